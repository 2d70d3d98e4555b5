from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    user_id: str
    tier: str
    created_at: datetime
