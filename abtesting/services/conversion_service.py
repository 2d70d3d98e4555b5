import logging
import uuid
from typing import Any, Dict, List, Optional

from abtesting.core.catalogue import ConversionGoal, PlatformFeature
from abtesting.core.clock import Clock, utcnow
from abtesting.models.schemas.event import ConversionEvent
from abtesting.services.definitions import ExperimentDefinitions
from abtesting.store.base import ExperimentStore

logger = logging.getLogger(__name__)


class ConversionService:
    def __init__(
        self,
        store: ExperimentStore,
        definitions: Optional[ExperimentDefinitions] = None,
        clock: Clock = utcnow,
    ):
        """Initializes the service with the store it records into."""
        self.store = store
        self.definitions = definitions or ExperimentDefinitions(store)
        self.clock = clock

    def record_event(
        self,
        user_id: str,
        experiment_id: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        value: float = 0.0,
    ) -> Optional[ConversionEvent]:
        """
        Handles the business logic for recording an event.

        1. Finds the user's assignment; without one the event cannot be
           attributed and nothing is written.
        2. Appends the event unconditionally.
        3. On the experiment's conversion goal, flips the assignment to
           converted. Only the first goal event flips it; later ones are
           still recorded.
        """
        assignment = self.store.get_assignment(user_id, experiment_id)
        if assignment is None:
            return None

        now = self.clock()
        event = self.store.append_event(
            ConversionEvent(
                event_id=str(uuid.uuid4()),
                user_id=user_id,
                experiment_id=experiment_id,
                variant_id=assignment.variant_id,
                event_type=event_type,
                event_data=dict(event_data or {}),
                conversion_value=value,
                occurred_at=now,
            )
        )

        experiment = self.definitions.get(experiment_id)
        if (
            experiment is not None
            and event_type == experiment.conversion_goal
            and not assignment.converted
        ):
            if self.store.mark_converted_if_unset(assignment.assignment_id, value, now):
                logger.info(
                    "User %s converted in experiment %s (variant %s)",
                    user_id,
                    experiment_id,
                    assignment.variant_id,
                )

        return event

    def track_event(
        self,
        user_id: str,
        event_type: str,
        event_data: Optional[Dict[str, Any]] = None,
        value: float = 0.0,
    ) -> List[str]:
        """
        Attributes a product event to every running experiment the user is
        assigned in. Returns the experiment ids it was recorded against.
        """
        recorded = []
        for assignment in self.store.list_user_assignments(user_id):
            event = self.record_event(
                user_id, assignment.experiment_id, event_type, event_data, value
            )
            if event is not None:
                recorded.append(assignment.experiment_id)
        return recorded

    def track_user_action(
        self,
        user_id: str,
        action: str,
        feature: str,
        metadata: Optional[Dict[str, Any]] = None,
        value: float = 0.0,
    ) -> List[str]:
        """
        Reports a product action. The event data always carries the feature
        the action happened in and when it happened; metadata keys may add to
        but not replace them.
        """
        event_data = {"feature": feature, "timestamp": self.clock().isoformat()}
        event_data.update(
            (k, v) for k, v in (metadata or {}).items() if k not in event_data
        )
        recorded = self.track_event(user_id, action, event_data, value)
        logger.info(
            "Tracked %s for user %s in %s (%d experiments)",
            action,
            user_id,
            feature,
            len(recorded),
        )
        return recorded

    def track_signup(self, user_id: str, method: str) -> List[str]:
        # Signups count towards document_created, the first action a new account takes
        return self.track_user_action(
            user_id,
            ConversionGoal.DOCUMENT_CREATED.value,
            PlatformFeature.SIGNUP_FLOW.value,
            {"method": method},
        )

    def track_document_created(self, user_id: str, document_type: str) -> List[str]:
        return self.track_user_action(
            user_id,
            ConversionGoal.DOCUMENT_CREATED.value,
            PlatformFeature.EDITOR_LAYOUT.value,
            {"document_type": document_type},
        )

    def track_ai_feature_used(self, user_id: str, feature_type: str) -> List[str]:
        return self.track_user_action(
            user_id,
            ConversionGoal.AI_FEATURE_USED.value,
            PlatformFeature.AI_SUGGESTIONS.value,
            {"feature_type": feature_type},
        )

    def track_upgrade(
        self, user_id: str, from_tier: str, to_tier: str, value: float = 0.0
    ) -> List[str]:
        return self.track_user_action(
            user_id,
            ConversionGoal.UPGRADE_TO_PREMIUM.value,
            PlatformFeature.PRICING_DISPLAY.value,
            {"from_tier": from_tier, "to_tier": to_tier},
            value,
        )

    def track_export(self, user_id: str, export_format: str, has_watermark: bool) -> List[str]:
        return self.track_user_action(
            user_id,
            ConversionGoal.DOCUMENT_EXPORTED.value,
            PlatformFeature.EXPORT_OPTIONS.value,
            {"format": export_format, "has_watermark": has_watermark},
        )
