from typing import List, Optional

from abtesting.core.cache import TTLCache
from abtesting.models.schemas.experiment import Experiment
from abtesting.store.base import ExperimentStore


class ExperimentDefinitions:
    """
    Read-through view of experiment definitions. The cache is shared by every
    request on a service instance, so a definition may be up to one TTL stale.
    Assignments and events are never cached here.
    """

    def __init__(self, store: ExperimentStore, cache: Optional[TTLCache] = None):
        self.store = store
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=0)

    def get(self, experiment_id: str) -> Optional[Experiment]:
        return self.cache.get_or_set(
            ("experiment", experiment_id),
            lambda: self.store.get_experiment(experiment_id),
        )

    def running_for_feature(self, feature: str) -> Optional[Experiment]:
        return self.cache.get_or_set(
            ("running", feature),
            lambda: self.store.get_running_experiment(feature),
        )

    def running(self) -> List[Experiment]:
        return self.cache.get_or_set(("running",), self.store.list_running_experiments)

    def invalidate(self, experiment: Experiment) -> None:
        self.cache.delete(("experiment", experiment.experiment_id))
        self.cache.delete(("running", experiment.feature))
        self.cache.delete(("running",))
