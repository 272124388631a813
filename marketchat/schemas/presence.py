from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .common import UTCDateTime


class PresenceRead(BaseModel):
    user_id: UUID
    is_online: bool = False
    last_seen: UTCDateTime

    model_config = ConfigDict(from_attributes=True)
