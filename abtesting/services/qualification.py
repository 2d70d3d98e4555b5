import logging
from typing import Optional

from abtesting.core.clock import Clock, utcnow
from abtesting.models.schemas.assignment import AssignmentContext
from abtesting.models.schemas.experiment import Experiment
from abtesting.models.schemas.profile import UserProfile
from abtesting.store.base import ExperimentStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


class QualificationFilter:
    """
    Decides whether a user may enter a running experiment. Has no side
    effects; a missing profile is a plain "no", while store failures
    propagate to the caller.
    """

    def __init__(self, store: ExperimentStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def qualifies(
        self,
        user_id: str,
        experiment: Experiment,
        context: Optional[AssignmentContext] = None,
    ) -> bool:
        return self.evaluate(user_id, experiment, context) is not None

    def evaluate(
        self,
        user_id: str,
        experiment: Experiment,
        context: Optional[AssignmentContext] = None,
    ) -> Optional[UserProfile]:
        """
        Returns the user's profile when every check passes, None otherwise.
        The profile is handed back so the caller can record the tier without a
        second lookup.
        """
        if not experiment.is_running:
            return None

        profile = self.store.get_user_profile(user_id)
        if profile is None:
            logger.debug("No profile for user %s; not qualified for %s", user_id, experiment.experiment_id)
            return None

        audience = experiment.target_audience

        if audience.user_tiers and profile.tier not in audience.user_tiers:
            return None

        if audience.min_account_age is not None:
            account_age_days = (self.clock() - profile.created_at).total_seconds() / SECONDS_PER_DAY
            if account_age_days < audience.min_account_age:
                return None

        if audience.new_users_only and experiment.start_time is not None:
            if profile.created_at < experiment.start_time:
                return None

        if audience.countries:
            country = context.country if context else None
            if country is None or country not in audience.countries:
                return None

        if user_id in audience.exclude_user_ids:
            return None

        # Never show a user two variants of the same feature at once
        if self.store.has_conflicting_assignment(user_id, experiment.feature, experiment.experiment_id):
            logger.debug(
                "User %s already in another running %s experiment", user_id, experiment.feature
            )
            return None

        return profile
