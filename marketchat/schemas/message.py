import uuid

from pydantic import BaseModel, ConfigDict

from .common import UTCDateTime


class AttachmentDescriptor(BaseModel):
    url: str
    type: str
    name: str

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")

    def caption(self) -> str:
        """Text used in place of an empty message body."""
        return "Sent an image" if self.is_image else "Sent a file"


class MessageRead(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    is_read: bool = False
    read_at: UTCDateTime | None = None
    created_at: UTCDateTime
    attachment_url: str | None = None
    attachment_type: str | None = None
    attachment_name: str | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)
