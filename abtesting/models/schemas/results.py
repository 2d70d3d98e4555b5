import enum
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class ResultsStatus(str, enum.Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    NO_SIGNIFICANT_DIFFERENCE = "no_significant_difference"
    SIGNIFICANT_WINNER = "significant_winner"
    SIGNIFICANT_LOSER = "significant_loser"


class SecondaryMetric(BaseModel):
    value: float = Field(..., description="Events of this type per participant.")
    improvement: Optional[float] = Field(
        None, description="Relative change vs. control, in percent."
    )


class VariantResults(BaseModel):
    """Metrics aggregated for a single variant."""

    variant_id: str
    participants: int
    conversions: int
    conversion_rate: float
    confidence_interval: Tuple[float, float]
    secondary_metrics: Dict[str, SecondaryMetric] = Field(default_factory=dict)


class VariantComparison(BaseModel):
    """Two-proportion z-test of one treatment against the control."""

    variant_id: str
    z_score: float
    p_value: float
    effect: float = Field(..., description="Relative lift over control, in percent.")
    confidence: float
    significant: bool
    required_sample_size: Optional[int] = Field(
        None, description="Per-variant sample needed to detect the minimum effect."
    )
    actual_sample_size: int


class DailyVariantResults(BaseModel):
    variant_id: str
    participants: int
    conversions: int
    conversion_rate: float


class DailyResults(BaseModel):
    day: date
    variant_results: List[DailyVariantResults]


class ExperimentResults(BaseModel):
    """Derived on demand; never persisted as authoritative state."""

    experiment_id: str
    status: ResultsStatus
    winning_variant: Optional[str] = None
    confidence: float
    p_value: float
    effect: float
    variant_results: List[VariantResults] = Field(default_factory=list)
    comparisons: List[VariantComparison] = Field(default_factory=list)
    daily_results: List[DailyResults] = Field(default_factory=list)
    calculated_at: datetime
