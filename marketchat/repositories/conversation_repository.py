import uuid
from typing import Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketchat.models import Conversation, utcnow
from marketchat.realtime import ChangeEventType
from marketchat.schemas import ConversationRead

from .base import BaseRepository


class ConversationRepository(BaseRepository):
    collection = "conversations"

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def list_user_conversations(self, user_id: UUID) -> Sequence[Conversation]:
        """Lists conversations where the user is buyer or seller, most recent activity first."""
        stmt = (
            select(Conversation)
            .where(or_(Conversation.buyer_id == user_id, Conversation.seller_id == user_id))
            .order_by(
                Conversation.last_message_at.desc().nullslast(),
                Conversation.created_at.desc(),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_conversation(
        self, buyer_id: UUID, seller_id: UUID, property_id: UUID | None = None
    ) -> Conversation | None:
        """Finds the conversation for a (buyer, seller, listing-or-none) triple."""
        stmt = select(Conversation).filter(
            Conversation.buyer_id == buyer_id,
            Conversation.seller_id == seller_id,
        )
        if property_id is not None:
            stmt = stmt.filter(Conversation.property_id == property_id)
        else:
            stmt = stmt.filter(Conversation.property_id.is_(None))
        # Duplicates can exist after a creation race; resume the oldest one
        stmt = stmt.order_by(Conversation.created_at.asc())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_conversation(
        self, buyer_id: UUID, seller_id: UUID, property_id: UUID | None = None
    ) -> Conversation:
        """Creates and adds a new conversation to the session."""
        now = utcnow()
        conversation = Conversation(
            id=uuid.uuid4(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            property_id=property_id,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(conversation)
        await self.session.flush()
        self._record(
            ChangeEventType.INSERT, ConversationRead.model_validate(conversation)
        )
        return conversation
