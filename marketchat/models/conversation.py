from sqlalchemy import Column, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from .base import BaseModel


class Conversation(BaseModel):
    __tablename__ = "conversations"

    # id, created_at, updated_at are inherited from BaseModel
    buyer_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    seller_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    # No uniqueness constraint on (buyer, seller, property): start-or-resume
    # relies on a lookup before insert.
    property_id = Column(Uuid(as_uuid=True), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan"
    )
