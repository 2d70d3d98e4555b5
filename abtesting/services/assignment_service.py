import logging
import uuid
from typing import List, Optional

from abtesting.core.clock import Clock, utcnow
from abtesting.core.hashing import bucket, inclusion_key, variant_key
from abtesting.models.schemas.assignment import Assignment, AssignmentContext
from abtesting.models.schemas.experiment import Experiment, Variant
from abtesting.services.definitions import ExperimentDefinitions
from abtesting.services.qualification import QualificationFilter
from abtesting.store.base import ExperimentStore

logger = logging.getLogger(__name__)


def is_in_traffic(user_id: str, experiment: Experiment) -> bool:
    """Whether the user falls inside the experiment's traffic allocation."""
    return bucket(inclusion_key(user_id, experiment.experiment_id)) <= experiment.traffic_allocation / 100


def pick_variant(user_id: str, experiment: Experiment) -> Variant:
    """
    Walks the variants in authored order, accumulating traffic splits, and
    returns the first whose cumulative share reaches the user's bucket.
    """
    variants: List[Variant] = sorted(experiment.variants, key=lambda v: v.position)
    variant_pick = bucket(variant_key(user_id, experiment.experiment_id))

    cumulative_weight = 0.0
    for variant in variants:
        cumulative_weight += variant.traffic_split / 100
        if variant_pick <= cumulative_weight:
            return variant

    # Floating point rounding can leave the last sliver uncovered
    return variants[0]


class AssignmentService:
    def __init__(
        self,
        store: ExperimentStore,
        definitions: Optional[ExperimentDefinitions] = None,
        qualification: Optional[QualificationFilter] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.definitions = definitions or ExperimentDefinitions(store)
        self.qualification = qualification or QualificationFilter(store, clock=clock)
        self.clock = clock

    def get_or_create_variant(
        self,
        user_id: str,
        experiment_id: str,
        context: Optional[AssignmentContext] = None,
    ) -> Optional[Variant]:
        """
        Gets a user's variant, creating the assignment on first sight.

        1. An existing assignment in a running experiment is authoritative.
        2. Otherwise the user must qualify and fall inside the traffic slice.
        3. The variant is picked by hash and persisted exactly once.

        Returns None when the user is not in the experiment; nothing is written
        for such users. Store failures propagate.
        """
        experiment = self.definitions.get(experiment_id)

        existing_assignment = self.store.get_assignment(user_id, experiment_id)
        if existing_assignment is not None:
            if experiment is None or not experiment.is_running:
                return None
            variant = experiment.get_variant(existing_assignment.variant_id)
            if variant is None:
                logger.warning(
                    "Assignment %s points at unknown variant %s in experiment %s",
                    existing_assignment.assignment_id,
                    existing_assignment.variant_id,
                    experiment_id,
                )
                return None
            self.store.touch_last_seen(existing_assignment.assignment_id, self.clock())
            logger.debug(
                "User %s already assigned to variant %s. Returning existing.",
                user_id,
                variant.variant_id,
            )
            return variant

        if experiment is None or not experiment.is_running:
            return None

        profile = self.qualification.evaluate(user_id, experiment, context)
        if profile is None:
            return None

        if not is_in_traffic(user_id, experiment):
            return None

        assigned_variant = pick_variant(user_id, experiment)

        now = self.clock()
        context = context or AssignmentContext()
        stored = self.store.create_assignment_if_absent(
            Assignment(
                assignment_id=str(uuid.uuid4()),
                experiment_id=experiment_id,
                user_id=user_id,
                variant_id=assigned_variant.variant_id,
                assigned_at=now,
                first_seen=now,
                last_seen=now,
                user_tier=profile.tier,
                user_agent=context.user_agent,
                country=context.country,
                referral_source=context.referral_source,
            )
        )

        if stored.variant_id != assigned_variant.variant_id:
            # Lost a race against a writer that picked differently (e.g. splits
            # changed in between); the stored row wins.
            logger.info(
                "Assignment race for user %s in %s resolved to stored variant %s",
                user_id,
                experiment_id,
                stored.variant_id,
            )
            return experiment.get_variant(stored.variant_id)

        logger.info(
            "Assigned user %s to variant %s in experiment %s",
            user_id,
            stored.variant_id,
            experiment_id,
        )
        return assigned_variant
