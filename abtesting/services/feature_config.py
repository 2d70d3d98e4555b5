import logging
from typing import Any, Dict, Mapping, Optional

from abtesting.core.cache import TTLCache
from abtesting.models.schemas.assignment import AssignmentContext
from abtesting.models.schemas.experiment import Variant
from abtesting.services.assignment_service import AssignmentService
from abtesting.services.definitions import ExperimentDefinitions

logger = logging.getLogger(__name__)


def merge_config(default_config: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: keys from ``overrides`` win, everything else keeps its
    default. Returns a new dict; neither input is touched.
    """
    merged = dict(default_config)
    merged.update(overrides)
    return merged


class FeatureConfigResolver:
    """
    The application's view of experimentation: "what config should this user
    see for this feature?". Any failure to resolve an experiment degrades to
    the caller's default; experimentation never blocks a feature.
    """

    def __init__(
        self,
        assignments: AssignmentService,
        definitions: ExperimentDefinitions,
        sessions: Optional[TTLCache] = None,
    ):
        self.assignments = assignments
        self.definitions = definitions
        # (user_id, feature) -> (experiment_id, variant); short-lived
        self.sessions = sessions if sessions is not None else TTLCache(ttl_seconds=0)

    def resolve_variant(
        self,
        user_id: str,
        feature: str,
        context: Optional[AssignmentContext] = None,
    ) -> Optional[Variant]:
        """The user's variant in the feature's running experiment. May raise."""
        cached = self.sessions.get((user_id, feature))
        if cached is not None:
            return cached

        experiment = self.definitions.running_for_feature(feature)
        if experiment is None:
            return None

        variant = self.assignments.get_or_create_variant(
            user_id, experiment.experiment_id, context
        )
        self.sessions.set((user_id, feature), variant)
        return variant

    def get_config(
        self,
        user_id: str,
        feature: str,
        default_config: Mapping[str, Any],
        context: Optional[AssignmentContext] = None,
    ) -> Dict[str, Any]:
        try:
            variant = self.resolve_variant(user_id, feature, context)
        except Exception as e:
            logger.warning(
                "Falling back to default config for %s (user %s): %s",
                feature,
                user_id,
                e,
                exc_info=True,
            )
            return dict(default_config)

        if variant is None:
            return dict(default_config)
        return merge_config(default_config, variant.configuration_json)

    def is_enabled(
        self,
        user_id: str,
        flag: str,
        default: bool = False,
        context: Optional[AssignmentContext] = None,
    ) -> bool:
        config = self.get_config(user_id, flag, {"enabled": default}, context)
        enabled = config.get("enabled")
        return default if enabled is None else bool(enabled)

    def initialize_session(
        self,
        user_id: str,
        context: Optional[AssignmentContext] = None,
    ) -> Dict[str, Variant]:
        """
        Resolves the user's variant in every running experiment up front, so
        the first feature lookups of a session are cache hits. Returns the
        variants by experiment id; experiments the user is not in are left
        out. A failing experiment is logged and skipped.
        """
        variants: Dict[str, Variant] = {}
        claimed = set()
        try:
            running = self.definitions.running()
        except Exception as e:
            logger.warning("Could not list running experiments for %s: %s", user_id, e)
            return variants

        for experiment in running:
            # The oldest running experiment owns the feature, as in resolve_variant
            owns_feature = experiment.feature not in claimed
            claimed.add(experiment.feature)
            try:
                variant = self.assignments.get_or_create_variant(
                    user_id, experiment.experiment_id, context
                )
            except Exception as e:
                logger.warning(
                    "Skipping experiment %s for user %s: %s",
                    experiment.experiment_id,
                    user_id,
                    e,
                    exc_info=True,
                )
                continue
            if variant is None:
                continue
            variants[experiment.experiment_id] = variant
            if owns_feature:
                self.sessions.set((user_id, experiment.feature), variant)

        logger.info("Initialized session for user %s (%d experiments)", user_id, len(variants))
        return variants
