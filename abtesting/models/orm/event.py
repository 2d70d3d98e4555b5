from sqlalchemy import Column, DateTime, Float, ForeignKey, String

from abtesting.core.clock import utcnow

from .base import Base, JSONType


class ConversionEventORM(Base):
    """Append-only; rows are never updated or deleted."""

    __tablename__ = "conversion_events"

    event_id = Column(String, primary_key=True, index=True)

    user_id = Column(String, nullable=False, index=True)

    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), index=True, nullable=False
    )
    variant_id = Column(String, ForeignKey("variants.variant_id"), nullable=False)

    event_type = Column(String, nullable=False, index=True)

    event_data = Column(JSONType, default=dict, nullable=False)

    conversion_value = Column(Float, default=0.0, nullable=False)

    occurred_at = Column(DateTime, default=utcnow, nullable=False, index=True)
