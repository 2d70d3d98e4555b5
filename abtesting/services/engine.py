from typing import Any, Dict, List, Mapping, Optional

from abtesting.core.cache import TTLCache
from abtesting.core.clock import Clock, utcnow
from abtesting.models.schemas.assignment import AssignmentContext
from abtesting.models.schemas.experiment import Variant
from abtesting.models.schemas.results import ExperimentResults
from abtesting.services.assignment_service import AssignmentService
from abtesting.services.conversion_service import ConversionService
from abtesting.services.definitions import ExperimentDefinitions
from abtesting.services.experiment_service import ExperimentService
from abtesting.services.feature_config import FeatureConfigResolver
from abtesting.services.qualification import QualificationFilter
from abtesting.services.results_service import ResultsService
from abtesting.store.base import ExperimentStore


class ExperimentEngine:
    """
    Wires the engine's components around one store. Caches are passed in so
    a service instance can share them across requests; without them every
    call goes to the store.
    """

    def __init__(
        self,
        store: ExperimentStore,
        definition_cache: Optional[TTLCache] = None,
        session_cache: Optional[TTLCache] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.definitions = ExperimentDefinitions(store, definition_cache)
        self.experiments = ExperimentService(store, self.definitions)
        self.assignments = AssignmentService(
            store,
            definitions=self.definitions,
            qualification=QualificationFilter(store, clock=clock),
            clock=clock,
        )
        self.conversions = ConversionService(store, self.definitions, clock=clock)
        self.results = ResultsService(store, clock=clock)
        self.features = FeatureConfigResolver(self.assignments, self.definitions, session_cache)

    def get_config(
        self,
        user_id: str,
        feature: str,
        default_config: Mapping[str, Any],
        context: Optional[AssignmentContext] = None,
    ) -> Dict[str, Any]:
        return self.features.get_config(user_id, feature, default_config, context)

    def is_enabled(
        self,
        user_id: str,
        flag: str,
        default: bool = False,
        context: Optional[AssignmentContext] = None,
    ) -> bool:
        return self.features.is_enabled(user_id, flag, default, context)

    def get_variant(
        self,
        user_id: str,
        experiment_id: str,
        context: Optional[AssignmentContext] = None,
    ) -> Optional[Variant]:
        return self.assignments.get_or_create_variant(user_id, experiment_id, context)

    def track_event(
        self,
        user_id: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        value: float = 0.0,
    ) -> List[str]:
        return self.conversions.track_event(user_id, event_type, event_data, value)

    def record_event(
        self,
        user_id: str,
        experiment_id: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        value: float = 0.0,
    ) -> bool:
        return self.conversions.record_event(
            user_id, experiment_id, event_type, event_data, value
        ) is not None

    def track_user_action(
        self,
        user_id: str,
        action: str,
        feature: str,
        metadata: Optional[Dict[str, Any]] = None,
        value: float = 0.0,
    ) -> List[str]:
        return self.conversions.track_user_action(user_id, action, feature, metadata, value)

    def initialize_session(
        self, user_id: str, context: Optional[AssignmentContext] = None
    ) -> Dict[str, Variant]:
        return self.features.initialize_session(user_id, context)

    def compute_results(self, experiment_id: str) -> ExperimentResults:
        return self.results.compute_results(experiment_id)
