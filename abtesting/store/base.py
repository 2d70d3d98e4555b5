"""
The narrow persistence surface the engine needs.

Experiment and variant definitions are owned by the authoring side; the
engine writes assignments exactly once, appends events, and performs the one
conditional ``converted`` flip. Implementations raise StoreUnavailable when
the backing store cannot be reached or a call exceeds its timeout.
"""

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.models.schemas.assignment import Assignment
from abtesting.models.schemas.event import ConversionEvent
from abtesting.models.schemas.experiment import Experiment, ExperimentCreateModel
from abtesting.models.schemas.profile import UserProfile


@runtime_checkable
class ExperimentStore(Protocol):
    # --- definitions ---
    def get_experiment(self, experiment_id: str) -> Optional[Experiment]: ...

    def get_running_experiment(self, feature: str) -> Optional[Experiment]: ...

    def list_running_experiments(self) -> List[Experiment]:
        """Every running experiment, oldest start_time first."""
        ...

    def save_experiment(self, experiment_data: ExperimentCreateModel) -> Experiment: ...

    def update_experiment_status(self, experiment_id: str, status: ExperimentStatus) -> None: ...

    # --- profiles ---
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]: ...

    # --- assignments ---
    def get_assignment(self, user_id: str, experiment_id: str) -> Optional[Assignment]: ...

    def create_assignment_if_absent(self, assignment: Assignment) -> Assignment:
        """Insert, or return the row that already holds (user_id, experiment_id)."""
        ...

    def touch_last_seen(self, assignment_id: str, seen_at: datetime) -> None: ...

    def mark_converted_if_unset(
        self, assignment_id: str, value: float, converted_at: datetime
    ) -> bool: ...

    def list_assignments(self, experiment_id: str) -> List[Assignment]: ...

    def list_user_assignments(self, user_id: str) -> List[Assignment]:
        """The user's assignments in experiments that are currently running."""
        ...

    def has_conflicting_assignment(
        self, user_id: str, feature: str, experiment_id: str
    ) -> bool: ...

    # --- events ---
    def append_event(self, event: ConversionEvent) -> ConversionEvent: ...

    def list_events(
        self,
        experiment_id: str,
        event_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ConversionEvent]:
        """Events in occurrence order; start and end bound occurred_at inclusively."""
        ...
