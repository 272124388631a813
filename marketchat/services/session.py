import logging
from uuid import UUID

from marketchat.schemas import ConversationRead, MessageRead

from .context import SessionContext
from .messaging_service import MessagingCoordinator
from .presence_service import PresenceTracker

logger = logging.getLogger(__name__)


class MessagingSession:
    """The inbox screen: one coordinator and one presence tracker per user session."""

    def __init__(self, context: SessionContext, **tracker_options):
        self.context = context
        self.coordinator = MessagingCoordinator(context)
        self.presence = PresenceTracker(context, **tracker_options)

    async def __aenter__(self) -> "MessagingSession":
        await self.presence.start()
        await self.coordinator.start()
        await self.presence.fetch_presence(self.coordinator.counterpart_ids())
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.coordinator.stop()
        # Last, so the offline write is the final thing this session does
        await self.presence.stop()

    async def refresh(self) -> None:
        await self.coordinator.fetch_conversations()
        await self.presence.fetch_presence(self.coordinator.counterpart_ids())

    async def open(self, conversation_id: UUID) -> list[MessageRead]:
        messages = await self.coordinator.open_conversation(conversation_id)
        active = self.coordinator.active_conversation
        if active is not None:
            await self.presence.fetch_presence(
                [active.other_party(self.context.user_id)]
            )
        return messages

    async def contact_seller(
        self, seller_id: UUID, property_id: UUID | None = None
    ) -> ConversationRead | None:
        """Start or resume the conversation with a seller and open it."""
        conversation = await self.coordinator.start_conversation(seller_id, property_id)
        if conversation is None:
            return None
        logger.info(f"User {self.context.user_id} contacting seller {seller_id}")
        await self.open(conversation.id)
        return conversation

    def is_online(self, user_id: UUID) -> bool:
        return self.presence.is_user_online(user_id)
