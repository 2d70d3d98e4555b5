from sqlalchemy import Column, DateTime, String

from abtesting.core.clock import utcnow

from .base import Base


class UserProfileORM(Base):
    """Read-only view of the account data qualification needs."""

    __tablename__ = "user_profiles"

    user_id = Column(String, primary_key=True)
    tier = Column(String, nullable=False, default="free")
    created_at = Column(DateTime, default=utcnow, nullable=False)
