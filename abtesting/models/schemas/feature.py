from typing import Any, Dict

from pydantic import BaseModel, Field

from abtesting.models.schemas.experiment import Variant


class FeatureConfigRequest(BaseModel):
    user_id: str
    default_config: Dict[str, Any] = Field(default_factory=dict)


class FeatureConfigResponse(BaseModel):
    feature: str
    config: Dict[str, Any]


class FlagResponse(BaseModel):
    flag: str
    enabled: bool


class SessionResponse(BaseModel):
    user_id: str
    variants: Dict[str, Variant] = Field(
        default_factory=dict, description="The user's variant by experiment id."
    )
