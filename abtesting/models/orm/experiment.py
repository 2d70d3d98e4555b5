import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from abtesting.core.clock import utcnow

from .base import Base, JSONType


class ExperimentStatus(str, enum.Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# --- Experiment Model ---
class ExperimentORM(Base):
    __tablename__ = "experiments"

    # --- Core Identifiers ---
    experiment_id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text)
    hypothesis = Column(Text)
    feature = Column(String, nullable=False, index=True)

    # --- Lifecycle ---
    status = Column(
        Enum(ExperimentStatus, values_callable=lambda e: [m.value for m in e]),
        default=ExperimentStatus.DRAFT,
        nullable=False,
        index=True,
    )
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # --- Targeting ---
    # Share (0-100) of qualified users included at all
    traffic_allocation = Column(Float, nullable=False, default=100.0)
    # user_tiers, min_account_age, new_users_only, countries, exclude_user_ids
    target_audience = Column(JSONType, nullable=False, default=dict)

    # --- Timing ---
    start_time = Column(DateTime, default=utcnow)
    end_time = Column(DateTime, nullable=True)
    duration_days = Column(Integer, nullable=True)

    # --- Analysis ---
    primary_metric_name = Column(String, nullable=False)
    secondary_metrics = Column(JSONType, nullable=False, default=list)
    conversion_goal = Column(String, nullable=False)
    minimum_sample_size = Column(Integer, nullable=False, default=1000)
    # Minimum detectable effect, in percent
    minimum_effect = Column(Float, nullable=False, default=10.0)
    confidence_level = Column(Float, nullable=False, default=95.0)

    # Walk order matters for deterministic variant selection
    variants = relationship(
        "VariantORM",
        back_populates="experiment",
        order_by="VariantORM.position",
        cascade="all, delete-orphan",
    )


# --- Variant Model ---
class VariantORM(Base):
    __tablename__ = "variants"

    variant_id = Column(String, primary_key=True)
    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), nullable=False, index=True
    )
    variant_name = Column(String, nullable=False)
    description = Column(Text)
    is_control = Column(Boolean, nullable=False, default=False)
    # Share (0-100) of the experiment's traffic
    traffic_split = Column(Float, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Feature-specific override values merged over the caller's defaults
    configuration_json = Column(JSONType, nullable=False, default=dict)

    experiment = relationship("ExperimentORM", back_populates="variants")
