"""
Typed variant payloads.

A variant's ``configuration_json`` carries the override values for the
feature under test. Known features get a payload model so a typo in an
authored experiment is rejected up front; every field is optional because a
variant only overrides what it changes. Features without a model accept any
JSON object.
"""

from typing import Any, Dict, List, Literal, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class WatermarkCustomConfig(_Payload):
    text: Optional[str] = None
    sub_text: Optional[str] = None
    position: Optional[str] = None
    style: Dict[str, Any] = Field(default_factory=dict)


class WatermarkConfig(_Payload):
    enabled: Optional[bool] = None
    config_id: Optional[str] = None
    custom_config: Optional[WatermarkCustomConfig] = None


class PricingConfig(_Payload):
    premium_price: Optional[float] = Field(None, ge=0)
    enterprise_price: Optional[float] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    features: Optional[List[str]] = None
    primary_display: Optional[Literal["monthly", "annual"]] = None
    highlighted_plan: Optional[str] = None


class UIConfig(_Payload):
    theme: Optional[str] = None
    primary_color: Optional[str] = None
    button_style: Optional[str] = None
    layout: Optional[str] = None


class MessagingConfig(_Payload):
    upgrade_prompts: Optional[List[str]] = None
    features: Optional[List[str]] = None
    cta_text: Optional[str] = None


class AIAssistantConfig(_Payload):
    model: Optional[str] = None
    features: Optional[List[str]] = None
    response_style: Optional[Literal["helpful", "creative", "professional"]] = None
    max_suggestions: Optional[int] = Field(None, ge=0)
    placement: Optional[Literal["sidebar", "inline"]] = None


class EditorConfig(_Payload):
    layout: Optional[Literal["standard", "distraction-free", "split"]] = None
    toolbar_position: Optional[Literal["top", "bottom", "floating"]] = None
    auto_save: Optional[bool] = None
    spell_check: Optional[bool] = None


class CollaborationConfig(_Payload):
    real_time_editing: Optional[bool] = None
    comment_system: Optional[Literal["inline", "sidebar", "overlay"]] = None
    share_permissions: Optional[List[str]] = None


class ExportConfig(_Payload):
    formats: Optional[List[str]] = None
    quality: Optional[Literal["standard", "high", "print"]] = None
    branding: Optional[bool] = None


class ThemesConfig(_Payload):
    default_theme: Optional[str] = None
    allow_customization: Optional[bool] = None
    color_schemes: Optional[List[str]] = None


class AnalyticsConfig(_Payload):
    tracking_level: Optional[Literal["basic", "detailed", "none"]] = None
    report_frequency: Optional[Literal["daily", "weekly", "monthly"]] = None
    metrics: Optional[List[str]] = None


FEATURE_PAYLOADS: Dict[str, Type[_Payload]] = {
    "watermark": WatermarkConfig,
    "pricing": PricingConfig,
    "ui": UIConfig,
    "messaging": MessagingConfig,
    "ai_assistant": AIAssistantConfig,
    "editor": EditorConfig,
    "collaboration": CollaborationConfig,
    "export": ExportConfig,
    "themes": ThemesConfig,
    "analytics": AnalyticsConfig,
}


def validate_variant_config(feature: str, config: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a payload against the feature's model and return the normalised
    override dict (only the keys the author set). Raises pydantic's
    ValidationError for a bad payload on a known feature.
    """
    payload_model = FEATURE_PAYLOADS.get(feature)
    if payload_model is None:
        return dict(config)
    return payload_model.model_validate(dict(config)).model_dump(exclude_unset=True)
