from typing import Optional

from abtesting.models.orm.profile import UserProfileORM

from .base import BaseRepository


class ProfileRepository(BaseRepository):
    def get_profile(self, user_id: str) -> Optional[UserProfileORM]:
        with self._unavailable_on_failure("load user profile"):
            return self.db.get(UserProfileORM, user_id)
