from typing import List

from sqlalchemy import select

from abtesting.models.orm.event import ConversionEventORM

from .base import BaseRepository


class EventRepository(BaseRepository):
    def get_events_for_experiment(self, experiment_id: str, **kwargs) -> List[ConversionEventORM]:
        """
        Retrieves events for a specific experiment, applying optional filters
        for event type and time range.
        """
        stmt = select(ConversionEventORM).where(ConversionEventORM.experiment_id == experiment_id)

        if event_type := kwargs.get("event_type"):
            stmt = stmt.where(ConversionEventORM.event_type == event_type)

        if start_date := kwargs.get("start_date"):
            stmt = stmt.where(ConversionEventORM.occurred_at >= start_date)

        if end_date := kwargs.get("end_date"):
            stmt = stmt.where(ConversionEventORM.occurred_at <= end_date)

        stmt = stmt.order_by(ConversionEventORM.occurred_at)

        with self._unavailable_on_failure("list events"):
            return list(self.db.scalars(stmt).all())

    def create_event(self, db_event: ConversionEventORM) -> ConversionEventORM:
        """Appends an event row. Events are never updated afterwards."""
        with self._unavailable_on_failure("append event"):
            self.db.add(db_event)
            self.db.commit()
            self.db.refresh(db_event)
        return db_event
