from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from abtesting.models.orm.assignment import AssignmentORM
from abtesting.models.orm.event import ConversionEventORM
from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.models.schemas.assignment import Assignment
from abtesting.models.schemas.event import ConversionEvent
from abtesting.models.schemas.experiment import Experiment, ExperimentCreateModel
from abtesting.models.schemas.profile import UserProfile
from abtesting.repositories.assignment_repo import AssignmentRepository
from abtesting.repositories.event_repo import EventRepository
from abtesting.repositories.experiment_repo import ExperimentRepository
from abtesting.repositories.profile_repo import ProfileRepository


class SqlExperimentStore:
    """
    ExperimentStore over a SQLAlchemy session. One instance per request,
    like the session it wraps. Rows are lifted into frozen pydantic models so
    nothing outside this module holds a live ORM object.
    """

    def __init__(self, db: Session):
        self.experiment_repo = ExperimentRepository(db)
        self.assignment_repo = AssignmentRepository(db)
        self.event_repo = EventRepository(db)
        self.profile_repo = ProfileRepository(db)

    # --- definitions ---
    def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        row = self.experiment_repo.get_experiment_with_variants(experiment_id)
        return Experiment.model_validate(row) if row else None

    def get_running_experiment(self, feature: str) -> Optional[Experiment]:
        row = self.experiment_repo.get_running_for_feature(feature)
        return Experiment.model_validate(row) if row else None

    def list_running_experiments(self) -> List[Experiment]:
        rows = self.experiment_repo.get_running_experiments()
        return [Experiment.model_validate(row) for row in rows]

    def save_experiment(self, experiment_data: ExperimentCreateModel) -> Experiment:
        row = self.experiment_repo.create_experiment(experiment_data)
        return Experiment.model_validate(row)

    def update_experiment_status(self, experiment_id: str, status: ExperimentStatus) -> None:
        self.experiment_repo.update_status(experiment_id, status)

    # --- profiles ---
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        row = self.profile_repo.get_profile(user_id)
        return UserProfile.model_validate(row) if row else None

    # --- assignments ---
    def get_assignment(self, user_id: str, experiment_id: str) -> Optional[Assignment]:
        row = self.assignment_repo.get_assignment(experiment_id, user_id)
        return Assignment.model_validate(row) if row else None

    def create_assignment_if_absent(self, assignment: Assignment) -> Assignment:
        row = self.assignment_repo.create_assignment_if_absent(
            AssignmentORM(**assignment.model_dump())
        )
        return Assignment.model_validate(row)

    def touch_last_seen(self, assignment_id: str, seen_at: datetime) -> None:
        self.assignment_repo.touch_last_seen(assignment_id, seen_at)

    def mark_converted_if_unset(
        self, assignment_id: str, value: float, converted_at: datetime
    ) -> bool:
        return self.assignment_repo.mark_converted_if_unset(assignment_id, value, converted_at)

    def list_assignments(self, experiment_id: str) -> List[Assignment]:
        rows = self.assignment_repo.get_assignments_for_experiment(experiment_id)
        return [Assignment.model_validate(row) for row in rows]

    def list_user_assignments(self, user_id: str) -> List[Assignment]:
        rows = self.assignment_repo.get_running_assignments_for_user(user_id)
        return [Assignment.model_validate(row) for row in rows]

    def has_conflicting_assignment(
        self, user_id: str, feature: str, experiment_id: str
    ) -> bool:
        return self.assignment_repo.has_running_assignment_on_feature(
            user_id, feature, exclude_experiment_id=experiment_id
        )

    # --- events ---
    def append_event(self, event: ConversionEvent) -> ConversionEvent:
        row = self.event_repo.create_event(ConversionEventORM(**event.model_dump()))
        return ConversionEvent.model_validate(row)

    def list_events(
        self,
        experiment_id: str,
        event_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ConversionEvent]:
        rows = self.event_repo.get_events_for_experiment(
            experiment_id, event_type=event_type, start_date=start, end_date=end
        )
        return [ConversionEvent.model_validate(row) for row in rows]
