from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from abtesting.core.clock import utcnow

from .base import Base


class AssignmentORM(Base):
    __tablename__ = "assignments"

    assignment_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), nullable=False, index=True
    )
    variant_id = Column(String, ForeignKey("variants.variant_id"), nullable=False)

    assigned_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    first_seen = Column(DateTime, default=utcnow, nullable=False)
    last_seen = Column(DateTime, default=utcnow, nullable=False)

    # Flipped once, by the first conversion-goal event
    converted = Column(Boolean, default=False, nullable=False)
    converted_at = Column(DateTime, nullable=True)
    conversion_value = Column(Float, default=0.0, nullable=False)

    # Qualification context at assignment time
    user_tier = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    country = Column(String, nullable=True)
    referral_source = Column(String, nullable=True)

    __table_args__ = (
        # At most one assignment per user per experiment, across all instances
        UniqueConstraint("user_id", "experiment_id", name="uq_assignment_user_experiment"),
    )

    variant = relationship("VariantORM")

    experiment = relationship("ExperimentORM")
