import asyncio
import logging
import mimetypes
import time
from pathlib import PurePosixPath
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from marketchat.realtime import ChangeEvent, ChangeEventType, Subscription
from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.repositories.profile_repository import (
    ProfileRepository,
    PropertyRepository,
)
from marketchat.schemas import (
    AttachmentDescriptor,
    ConversationRead,
    ConversationView,
    MessageRead,
    ProfileSummary,
    PropertySummary,
)

from .context import SessionContext
from .exceptions import (
    AttachmentRejectedError,
    BusinessRuleError,
    ConversationNotFoundError,
    DatabaseError,
    StorageError,
)

logger = logging.getLogger(__name__)

ACCEPTED_FILE_EXTENSIONS = {".pdf", ".doc", ".docx", ".txt"}


class MessagingCoordinator:
    """Owns the signed-in user's inbox and the open conversation.

    State is plain attributes read by the UI layer: ``conversations`` (most
    recent activity first), ``active_conversation``, ``messages`` (oldest
    first) and ``loading``. Store and channel failures never escape a public
    method; background reads are logged, and failed user actions raise a
    notification through the session's notifier.
    """

    def __init__(self, context: SessionContext):
        self.context = context
        self.user_id = context.user_id
        self.store = context.store
        self.settings = context.settings

        self.conversations: list[ConversationView] = []
        self.active_conversation: ConversationView | None = None
        self.messages: list[MessageRead] = []
        self.loading = False

        self._subscription: Subscription | None = None
        self._fetch_generation = 0
        self._applied_generation = 0

    async def start(self) -> None:
        """Subscribe to message changes for the session and load the inbox."""
        if self._subscription is None:
            self._subscription = self.context.hub.subscribe(
                MessageRepository.collection, self._on_message_change
            )
        await self.fetch_conversations()

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    async def __aenter__(self) -> "MessagingCoordinator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()

    async def fetch_conversations(self) -> list[ConversationView]:
        """Reloads the inbox; on failure the previous list is kept.

        Overlapping refreshes may finish in any order. A result is applied
        unless a refresh started after it has already been applied.
        """
        self._fetch_generation += 1
        generation = self._fetch_generation
        self.loading = True
        try:
            conversations = await self._load_conversations()
            enriched = await asyncio.gather(
                *(self._enrich(conversation) for conversation in conversations)
            )
        except SQLAlchemyError as e:
            logger.error(
                f"Database error fetching conversations for user {self.user_id}: {e}"
            )
            return self.conversations
        except Exception as e:
            logger.error(
                f"Unexpected error fetching conversations for user {self.user_id}: {e}",
                exc_info=True,
            )
            return self.conversations
        finally:
            if generation == self._fetch_generation:
                self.loading = False

        if generation < self._applied_generation:
            # A refresh started later has already landed
            return self.conversations
        self._applied_generation = generation

        views = {view.id: view for view in enriched}
        self.conversations = [views[conversation.id] for conversation in conversations]
        if self.active_conversation is not None:
            self.active_conversation = views.get(
                self.active_conversation.id, self.active_conversation
            )
        return self.conversations

    async def _load_conversations(self) -> list[ConversationRead]:
        async with self.store.session() as session:
            rows = await ConversationRepository(session).list_user_conversations(
                self.user_id
            )
            return [ConversationRead.model_validate(row) for row in rows]

    async def _enrich(self, conversation: ConversationRead) -> ConversationView:
        other_id = conversation.other_party(self.user_id)
        async with self.store.session() as session:
            profile = await ProfileRepository(session).get_profile_by_user_id(other_id)
            listing = None
            if conversation.property_id is not None:
                listing = await PropertyRepository(session).get_property_by_id(
                    conversation.property_id
                )
            msg_repo = MessageRepository(session)
            last_message = await msg_repo.get_latest_message(conversation.id)
            unread_count = await msg_repo.count_unread(conversation.id, self.user_id)

        return ConversationView(
            **conversation.model_dump(),
            other_user=ProfileSummary.model_validate(profile) if profile else None,
            property=PropertySummary.model_validate(listing) if listing else None,
            last_message=(
                MessageRead.model_validate(last_message) if last_message else None
            ),
            unread_count=unread_count,
        )

    def get_conversation(self, conversation_id: UUID) -> ConversationView:
        for view in self.conversations:
            if view.id == conversation_id:
                return view
        raise ConversationNotFoundError(
            f"Conversation '{conversation_id}' is not in the inbox."
        )

    async def open_conversation(self, conversation_id: UUID) -> list[MessageRead]:
        """Makes a conversation active, loads its history and marks it read."""
        try:
            view = self.get_conversation(conversation_id)
        except ConversationNotFoundError as e:
            logger.warning(e.message)
            return self.messages

        self.active_conversation = view
        try:
            history = await self._load_messages(conversation_id)
        except DatabaseError as e:
            logger.error(e.message)
            return self.messages

        if self.active_conversation is None or self.active_conversation.id != view.id:
            return self.messages
        self.messages = history

        try:
            async with self.store.transaction() as session:
                await MessageRepository(session).mark_conversation_read(
                    conversation_id, self.user_id
                )
        except SQLAlchemyError as e:
            logger.error(
                f"Database error marking conversation {conversation_id} read: {e}"
            )
            return self.messages

        self._clear_unread(conversation_id)
        return self.messages

    def close_conversation(self) -> None:
        self.active_conversation = None
        self.messages = []

    async def _load_messages(self, conversation_id: UUID) -> list[MessageRead]:
        try:
            async with self.store.session() as session:
                rows = await MessageRepository(session).get_messages_by_conversation(
                    conversation_id
                )
                return [MessageRead.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to load messages for conversation {conversation_id}: {e}"
            ) from e

    def _clear_unread(self, conversation_id: UUID) -> None:
        self.conversations = [
            view.model_copy(update={"unread_count": 0})
            if view.id == conversation_id
            else view
            for view in self.conversations
        ]
        active = self.active_conversation
        if active is not None and active.id == conversation_id:
            self.active_conversation = active.model_copy(update={"unread_count": 0})

    async def send_message(
        self,
        conversation_id: UUID,
        content: str,
        attachment: AttachmentDescriptor | None = None,
    ) -> MessageRead | None:
        """Sends a message; a blank message without attachment is ignored."""
        text = (content or "").strip()
        if not text and attachment is None:
            return None

        try:
            async with self.store.transaction() as session:
                row = await MessageRepository(session).create_message(
                    conversation_id,
                    self.user_id,
                    text or attachment.caption(),
                    attachment_url=attachment.url if attachment else None,
                    attachment_type=attachment.type if attachment else None,
                    attachment_name=attachment.name if attachment else None,
                )
                message = MessageRead.model_validate(row)
        except SQLAlchemyError as e:
            logger.error(
                f"Database error sending message to conversation {conversation_id}: {e}"
            )
            self._notify_error("Failed to send message")
            return None

        return message

    async def upload_attachment(
        self,
        conversation_id: UUID,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> AttachmentDescriptor | None:
        """Stores a file in the conversation's folder and returns a signed descriptor."""
        name = PurePosixPath(filename.replace("\\", "/")).name
        content_type = (
            content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        )
        try:
            self._check_attachment(name, data, content_type)
            storage = self.context.storage
            if storage is None:
                raise StorageError("No storage client configured for this session.")
            # Timestamp prefix keeps repeated uploads of one filename apart
            path = f"{conversation_id}/{int(time.time() * 1000)}_{name}"
            await storage.upload(path, data, content_type)
            url = storage.create_signed_url(path, self.settings.SIGNED_URL_TTL_SECONDS)
        except AttachmentRejectedError as e:
            logger.info(f"Rejected attachment '{name}': {e.message}")
            self._notify_error(e.message)
            return None
        except StorageError as e:
            logger.error(f"Error uploading attachment '{name}': {e.message}")
            self._notify_error("Failed to upload file")
            return None

        return AttachmentDescriptor(url=url, type=content_type, name=name)

    def _check_attachment(self, name: str, data: bytes, content_type: str) -> None:
        if not name:
            raise AttachmentRejectedError("File has no name")
        if len(data) > self.settings.ATTACHMENT_MAX_BYTES:
            limit_mb = self.settings.ATTACHMENT_MAX_BYTES // (1024 * 1024)
            raise AttachmentRejectedError(f"File size must be less than {limit_mb}MB")
        suffix = PurePosixPath(name).suffix.lower()
        is_image = content_type.startswith("image/")
        if not is_image and suffix not in ACCEPTED_FILE_EXTENSIONS:
            raise AttachmentRejectedError(
                "Only images, PDF, Word and text files can be attached"
            )

    async def start_conversation(
        self, seller_id: UUID, property_id: UUID | None = None
    ) -> ConversationRead | None:
        """Resumes the buyer's conversation with a seller, creating it if needed.

        The lookup and the insert are separate round trips, so two overlapping
        calls for the same seller and listing can both insert.
        """
        try:
            if seller_id == self.user_id:
                raise BusinessRuleError("Cannot start a conversation with yourself.")

            async with self.store.session() as session:
                existing = await ConversationRepository(session).find_conversation(
                    self.user_id, seller_id, property_id
                )
                if existing is not None:
                    return ConversationRead.model_validate(existing)

            async with self.store.transaction() as session:
                row = await ConversationRepository(session).create_conversation(
                    self.user_id, seller_id, property_id
                )
                conversation = ConversationRead.model_validate(row)
        except BusinessRuleError as e:
            logger.info(f"Refused to start conversation: {e.message}")
            self._notify_error(e.message)
            return None
        except SQLAlchemyError as e:
            logger.error(
                f"Database error starting conversation with seller {seller_id}: {e}"
            )
            self._notify_error("Failed to start conversation")
            return None

        await self.fetch_conversations()
        return conversation

    def unread_count(self) -> int:
        return sum(view.unread_count for view in self.conversations)

    def counterpart_ids(self) -> list[UUID]:
        ids = (view.other_party(self.user_id) for view in self.conversations)
        return list(dict.fromkeys(ids))

    async def _on_message_change(self, event: ChangeEvent) -> None:
        if event.event_type == ChangeEventType.INSERT:
            await self._on_message_inserted(MessageRead.model_validate(event.new_record))
        elif event.event_type == ChangeEventType.UPDATE:
            self._on_message_updated(MessageRead.model_validate(event.new_record))

    async def _on_message_inserted(self, message: MessageRead) -> None:
        active = self.active_conversation
        if active is not None and message.conversation_id == active.id:
            # Redelivered events must not duplicate a bubble
            if all(existing.id != message.id for existing in self.messages):
                self.messages = [*self.messages, message]
            if message.sender_id != self.user_id:
                await self._mark_message_read(message.id)

        await self.fetch_conversations()

    def _on_message_updated(self, message: MessageRead) -> None:
        if any(existing.id == message.id for existing in self.messages):
            self.messages = [
                message if existing.id == message.id else existing
                for existing in self.messages
            ]

    async def _mark_message_read(self, message_id: UUID) -> None:
        try:
            async with self.store.transaction() as session:
                await MessageRepository(session).mark_message_read(
                    message_id, self.user_id
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to mark message {message_id} read: {e}")

    def _notify_error(self, description: str) -> None:
        try:
            self.context.notifier.notify("Error", description, variant="destructive")
        except Exception as e:
            logger.error(f"Notifier failed: {e}", exc_info=True)
