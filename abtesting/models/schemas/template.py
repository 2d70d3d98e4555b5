from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from abtesting.models.schemas.experiment import ExperimentCreateModel, TargetAudience, VariantConfig


class ExperimentTemplate(BaseModel):
    """A preset experiment. Turned into a draft with ``to_create_model``."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    feature: str
    traffic_allocation: float = Field(100.0, ge=0.0, le=100.0)
    variants: List[VariantConfig]
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    duration_days: Optional[int] = Field(None, ge=1)
    secondary_metrics: List[str] = Field(default_factory=list)
    conversion_goal: str
    minimum_sample_size: int = Field(1000, ge=1)
    minimum_effect: float = Field(10.0, gt=0)
    confidence_level: float = Field(95.0, gt=0, lt=100)

    def to_create_model(self, **overrides) -> ExperimentCreateModel:
        data = self.model_dump()
        data.update(overrides)
        return ExperimentCreateModel(**data)


class TemplateSummary(BaseModel):
    key: str
    name: str
    feature: str
    variant_names: List[str]
    conversion_goal: str


class TemplateExperimentRequest(BaseModel):
    """Optional overrides applied on top of a template."""

    name: Optional[str] = None
    traffic_allocation: Optional[float] = Field(None, ge=0.0, le=100.0)
    created_by: Optional[str] = None
