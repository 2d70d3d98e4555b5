from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConversionEvent(BaseModel):
    """Data model for a persistent, append-only event record."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    event_id: str
    user_id: str
    experiment_id: str
    variant_id: str
    event_type: str
    event_data: Dict[str, Any] = Field(default_factory=dict)
    conversion_value: float = 0.0
    occurred_at: datetime


class EventCreateModel(BaseModel):
    """Schema for reporting a product event (API input)."""

    user_id: str
    event_type: str = Field(..., description="e.g. 'upgrade_to_premium', 'document_exported'")
    event_data: Dict[str, Any] = Field(default_factory=dict)
    conversion_value: float = 0.0
    # When omitted the event is attributed to every running experiment the user is in
    experiment_id: Optional[str] = None


class EventResponseModel(BaseModel):
    experiment_ids: List[str] = Field(
        default_factory=list,
        description="Experiments the event was attributed to.",
    )


class UserActionModel(BaseModel):
    """A product action, reported with the feature it happened in."""

    user_id: str
    action: str = Field(..., description="Event type, e.g. 'document_exported'")
    feature: str = Field(..., description="Feature tag, e.g. 'export_options'")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    value: float = 0.0
