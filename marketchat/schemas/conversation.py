from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import UTCDateTime
from .message import MessageRead


class ConversationRead(BaseModel):
    id: UUID
    buyer_id: UUID
    seller_id: UUID
    property_id: UUID | None = None
    last_message_at: UTCDateTime | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)

    def other_party(self, user_id: UUID) -> UUID:
        return self.seller_id if self.buyer_id == user_id else self.buyer_id


class ProfileSummary(BaseModel):
    id: UUID = Field(validation_alias="user_id")
    full_name: str | None = None
    avatar_url: str | None = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class PropertySummary(BaseModel):
    id: UUID
    title: str
    images: list[str] = []

    model_config = ConfigDict(from_attributes=True)


# Conversation as shown in the inbox: the stored row plus fields derived per fetch
class ConversationView(ConversationRead):
    other_user: ProfileSummary | None = None
    property: PropertySummary | None = None
    last_message: MessageRead | None = None
    unread_count: int = 0
