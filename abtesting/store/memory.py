import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from abtesting.core.clock import utcnow
from abtesting.core.errors import InvalidExperimentConfig
from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.models.schemas.assignment import Assignment
from abtesting.models.schemas.event import ConversionEvent
from abtesting.models.schemas.experiment import Experiment, ExperimentCreateModel, Variant
from abtesting.models.schemas.profile import UserProfile


class InMemoryExperimentStore:
    """
    Process-local ExperimentStore. Honors the same write guarantees as the SQL
    store (single assignment per user and experiment, one-way conversion flip)
    under a lock. Used by tests and local development.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._experiments: Dict[str, Experiment] = {}
        self._profiles: Dict[str, UserProfile] = {}
        self._assignments: Dict[Tuple[str, str], Assignment] = {}  # (user_id, experiment_id)
        self._assignment_keys: Dict[str, Tuple[str, str]] = {}  # assignment_id -> key
        self._events: List[ConversionEvent] = []

    # --- seeding ---
    def put_experiment(self, experiment: Experiment) -> None:
        with self._lock:
            self._experiments[experiment.experiment_id] = experiment

    def put_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    # --- definitions ---
    def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return self._experiments.get(experiment_id)

    def get_running_experiment(self, feature: str) -> Optional[Experiment]:
        running = [
            e for e in self._snapshot(self._experiments)
            if e.feature == feature and e.status == ExperimentStatus.RUNNING
        ]
        running.sort(key=lambda e: (e.start_time or datetime.min, e.experiment_id))
        return running[0] if running else None

    def list_running_experiments(self) -> List[Experiment]:
        running = [e for e in self._snapshot(self._experiments) if e.is_running]
        return sorted(running, key=lambda e: (e.start_time or datetime.min, e.experiment_id))

    def save_experiment(self, experiment_data: ExperimentCreateModel) -> Experiment:
        now = utcnow()
        experiment = Experiment(
            experiment_id=str(uuid.uuid4()),
            status=ExperimentStatus.DRAFT,
            created_at=now,
            updated_at=now,
            variants=[
                Variant(variant_id=str(uuid.uuid4()), position=position, **v.model_dump())
                for position, v in enumerate(experiment_data.variants)
            ],
            **experiment_data.model_dump(exclude={"variants"}),
        )
        with self._lock:
            if any(e.name == experiment.name for e in self._experiments.values()):
                raise InvalidExperimentConfig(
                    f"Experiment name '{experiment.name}' is already taken."
                )
            self._experiments[experiment.experiment_id] = experiment
        return experiment

    def update_experiment_status(self, experiment_id: str, status: ExperimentStatus) -> None:
        with self._lock:
            experiment = self._experiments.get(experiment_id)
            if experiment is not None:
                self._experiments[experiment_id] = experiment.model_copy(
                    update={"status": status, "updated_at": utcnow()}
                )

    # --- profiles ---
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    # --- assignments ---
    def get_assignment(self, user_id: str, experiment_id: str) -> Optional[Assignment]:
        return self._assignments.get((user_id, experiment_id))

    def create_assignment_if_absent(self, assignment: Assignment) -> Assignment:
        key = (assignment.user_id, assignment.experiment_id)
        with self._lock:
            existing = self._assignments.get(key)
            if existing is not None:
                return existing
            self._assignments[key] = assignment
            self._assignment_keys[assignment.assignment_id] = key
            return assignment

    def touch_last_seen(self, assignment_id: str, seen_at: datetime) -> None:
        with self._lock:
            key = self._assignment_keys.get(assignment_id)
            if key is not None:
                self._assignments[key] = self._assignments[key].model_copy(
                    update={"last_seen": seen_at}
                )

    def mark_converted_if_unset(
        self, assignment_id: str, value: float, converted_at: datetime
    ) -> bool:
        with self._lock:
            key = self._assignment_keys.get(assignment_id)
            if key is None:
                return False
            current = self._assignments[key]
            if current.converted:
                return False
            self._assignments[key] = current.model_copy(
                update={
                    "converted": True,
                    "converted_at": converted_at,
                    "conversion_value": current.conversion_value + value,
                }
            )
            return True

    def list_assignments(self, experiment_id: str) -> List[Assignment]:
        rows = [a for a in self._snapshot(self._assignments) if a.experiment_id == experiment_id]
        return sorted(rows, key=lambda a: a.assigned_at)

    def list_user_assignments(self, user_id: str) -> List[Assignment]:
        return [
            a for a in self._snapshot(self._assignments)
            if a.user_id == user_id and self._is_running(a.experiment_id)
        ]

    def has_conflicting_assignment(
        self, user_id: str, feature: str, experiment_id: str
    ) -> bool:
        for assignment in self._snapshot(self._assignments):
            if assignment.user_id != user_id or assignment.experiment_id == experiment_id:
                continue
            other = self._experiments.get(assignment.experiment_id)
            if other is not None and other.feature == feature and other.is_running:
                return True
        return False

    # --- events ---
    def append_event(self, event: ConversionEvent) -> ConversionEvent:
        with self._lock:
            self._events.append(event)
        return event

    def list_events(
        self,
        experiment_id: str,
        event_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ConversionEvent]:
        events = [
            e for e in self._snapshot(self._events)
            if e.experiment_id == experiment_id
            and (event_type is None or e.event_type == event_type)
            and (start is None or e.occurred_at >= start)
            and (end is None or e.occurred_at <= end)
        ]
        return sorted(events, key=lambda e: e.occurred_at)

    def _is_running(self, experiment_id: str) -> bool:
        experiment = self._experiments.get(experiment_id)
        return experiment is not None and experiment.is_running

    def _snapshot(self, collection) -> list:
        # Readers iterate a copy so concurrent writers never invalidate the iterator
        with self._lock:
            if isinstance(collection, dict):
                return list(collection.values())
            return list(collection)
