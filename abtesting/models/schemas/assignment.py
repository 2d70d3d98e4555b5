from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .experiment import Variant


class AssignmentContext(BaseModel):
    """Request context captured on the assignment when it is first created."""

    user_agent: Optional[str] = None
    country: Optional[str] = None
    referral_source: Optional[str] = None


class Assignment(BaseModel):
    """Data model for a persistent user assignment record."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    assignment_id: str
    experiment_id: str
    user_id: str
    variant_id: str
    assigned_at: datetime
    first_seen: datetime
    last_seen: datetime
    converted: bool = False
    converted_at: Optional[datetime] = None
    conversion_value: float = 0.0
    user_tier: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    referral_source: Optional[str] = None


class AssignmentResponseModel(BaseModel):
    experiment_id: str
    user_id: str
    in_experiment: bool = Field(
        ..., description="False when the user is unqualified or outside the traffic slice."
    )
    variant: Optional[Variant] = None
