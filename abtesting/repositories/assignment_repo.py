import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError

from abtesting.models.orm.assignment import AssignmentORM
from abtesting.models.orm.experiment import ExperimentORM, ExperimentStatus

from .base import BaseRepository

logger = logging.getLogger(__name__)


class AssignmentRepository(BaseRepository):
    def get_assignment(self, experiment_id: str, user_id: str) -> Optional[AssignmentORM]:
        """Retrieves a persistent assignment for a user in a specific experiment."""
        stmt = select(AssignmentORM).where(
            AssignmentORM.experiment_id == experiment_id,
            AssignmentORM.user_id == user_id,
        )
        with self._unavailable_on_failure("load assignment"):
            return self.db.scalars(stmt).one_or_none()

    def get_assignments_for_experiment(self, experiment_id: str) -> List[AssignmentORM]:
        """Every assignment in the experiment, oldest first."""
        stmt = (
            select(AssignmentORM)
            .where(AssignmentORM.experiment_id == experiment_id)
            .order_by(AssignmentORM.assigned_at)
        )
        with self._unavailable_on_failure("list assignments"):
            return list(self.db.scalars(stmt).all())

    def get_running_assignments_for_user(self, user_id: str) -> List[AssignmentORM]:
        stmt = (
            select(AssignmentORM)
            .join(ExperimentORM, ExperimentORM.experiment_id == AssignmentORM.experiment_id)
            .where(
                AssignmentORM.user_id == user_id,
                ExperimentORM.status == ExperimentStatus.RUNNING,
            )
        )
        with self._unavailable_on_failure("list user assignments"):
            return list(self.db.scalars(stmt).all())

    def has_running_assignment_on_feature(
        self, user_id: str, feature: str, exclude_experiment_id: str
    ) -> bool:
        """True when the user holds an assignment in another running experiment on the feature."""
        stmt = select(
            exists().where(
                AssignmentORM.user_id == user_id,
                AssignmentORM.experiment_id != exclude_experiment_id,
                AssignmentORM.experiment_id == ExperimentORM.experiment_id,
                ExperimentORM.feature == feature,
                ExperimentORM.status == ExperimentStatus.RUNNING,
            )
        )
        with self._unavailable_on_failure("check feature exclusion"):
            return bool(self.db.scalar(stmt))

    def create_assignment_if_absent(self, db_assignment: AssignmentORM) -> AssignmentORM:
        """
        Inserts the assignment unless one already exists for the same user and
        experiment. The unique constraint arbitrates concurrent inserts: the
        loser rolls back and reads the winner's row.
        """
        with self._unavailable_on_failure("create assignment"):
            try:
                self.db.add(db_assignment)
                self.db.commit()
                self.db.refresh(db_assignment)
                return db_assignment
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    "Assignment for user %s in experiment %s already exists; returning it",
                    db_assignment.user_id,
                    db_assignment.experiment_id,
                )

            existing = self.get_assignment(db_assignment.experiment_id, db_assignment.user_id)
            if existing is None:
                # Conflict on something other than (user, experiment)
                raise RuntimeError(
                    f"Could not create or read assignment for user {db_assignment.user_id} "
                    f"in experiment {db_assignment.experiment_id}"
                )
            return existing

    def touch_last_seen(self, assignment_id: str, seen_at: datetime) -> None:
        stmt = (
            update(AssignmentORM)
            .where(AssignmentORM.assignment_id == assignment_id)
            .values(last_seen=seen_at)
        )
        with self._unavailable_on_failure("touch assignment"):
            self.db.execute(stmt)
            self.db.commit()

    def mark_converted_if_unset(
        self, assignment_id: str, value: float, converted_at: datetime
    ) -> bool:
        """
        Conditional update: only the first caller flips the flag. Returns
        whether this call did.
        """
        stmt = (
            update(AssignmentORM)
            .where(
                AssignmentORM.assignment_id == assignment_id,
                AssignmentORM.converted.is_(False),
            )
            .values(
                converted=True,
                converted_at=converted_at,
                conversion_value=AssignmentORM.conversion_value + value,
            )
        )
        with self._unavailable_on_failure("mark assignment converted"):
            result = self.db.execute(stmt)
            self.db.commit()
            return result.rowcount == 1
