from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from abtesting.core.clock import utcnow
from abtesting.models.orm.experiment import ExperimentStatus


class TargetAudience(BaseModel):
    """Who may enter the experiment. Empty lists mean no restriction."""

    model_config = ConfigDict(frozen=True)

    user_tiers: List[str] = Field(default_factory=list)
    min_account_age: Optional[float] = Field(
        None, ge=0, description="Minimum account age in days."
    )
    new_users_only: bool = Field(
        False, description="Only accounts created after the experiment started."
    )
    countries: List[str] = Field(default_factory=list)
    exclude_user_ids: List[str] = Field(default_factory=list)


class VariantConfig(BaseModel):
    """Configuration for a single variant in an experiment (authoring input)."""

    variant_name: str
    description: Optional[str] = None
    traffic_split: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Percentage of experiment traffic allocated to this variant.",
    )
    is_control: bool = False
    configuration_json: Dict[str, Any] = Field(default_factory=dict)


class Variant(BaseModel):
    """A persisted variant, as read back from the store."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    variant_id: str
    variant_name: str
    description: Optional[str] = None
    is_control: bool = False
    traffic_split: float
    position: int = 0
    configuration_json: Dict[str, Any] = Field(default_factory=dict)


class ExperimentCreateModel(BaseModel):
    """Authoring input for a new experiment. New experiments start in draft."""

    name: str
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    feature: str = Field(..., min_length=1, description="Feature tag, e.g. 'watermark'")
    traffic_allocation: float = Field(100.0, ge=0.0, le=100.0)
    variants: List[VariantConfig]
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    duration_days: Optional[int] = Field(None, ge=1)
    primary_metric_name: str = "conversion_rate"
    secondary_metrics: List[str] = Field(default_factory=list)
    conversion_goal: str = Field(..., description="Event type that marks a conversion")
    minimum_sample_size: int = Field(1000, ge=1)
    minimum_effect: float = Field(10.0, gt=0, description="Minimum detectable effect (%)")
    confidence_level: float = Field(95.0, gt=0, lt=100)
    created_by: Optional[str] = None


class Experiment(BaseModel):
    """Data model for a persistent experiment record."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    experiment_id: str = Field(..., description="Unique ID for the experiment.")
    name: str
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    feature: str
    status: ExperimentStatus = ExperimentStatus.DRAFT
    traffic_allocation: float = 100.0
    variants: List[Variant]
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_days: Optional[int] = None
    primary_metric_name: str = "conversion_rate"
    secondary_metrics: List[str] = Field(default_factory=list)
    conversion_goal: str
    minimum_sample_size: int = 1000
    minimum_effect: float = 10.0
    confidence_level: float = 95.0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.status == ExperimentStatus.RUNNING

    @property
    def control_variant(self) -> Optional[Variant]:
        return next((v for v in self.variants if v.is_control), None)

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        return next((v for v in self.variants if v.variant_id == variant_id), None)


class ExperimentStatusUpdate(BaseModel):
    status: ExperimentStatus
