import logging
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from abtesting.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class BaseRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    @contextmanager
    def _unavailable_on_failure(self, action: str):
        """
        Connection failures, statement timeouts and pool exhaustion become
        StoreUnavailable. Integrity and programming errors pass through.
        """
        try:
            yield
        except (OperationalError, PoolTimeoutError) as e:
            self.db.rollback()
            logger.error("Database unavailable while trying to %s: %s", action, e)
            raise StoreUnavailable(f"Database unavailable while trying to {action}") from e
