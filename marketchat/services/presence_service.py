import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from marketchat.realtime import ChangeEvent, ChangeEventType, Subscription
from marketchat.repositories.presence_repository import PresenceRepository
from marketchat.schemas import PresenceRead

from .context import SessionContext

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Publishes the signed-in user's heartbeat and caches everyone else's.

    ``presence`` maps user id to the most recently observed record. It is
    filled by ``fetch_presence`` and by realtime changes on the presence
    table; ``is_user_online`` only ever reads it.
    """

    def __init__(
        self,
        context: SessionContext,
        heartbeat_interval: float | None = None,
        online_timeout: timedelta | None = None,
    ):
        self.context = context
        self.user_id = context.user_id
        self.store = context.store
        self.heartbeat_interval = (
            heartbeat_interval
            if heartbeat_interval is not None
            else context.settings.HEARTBEAT_INTERVAL_SECONDS
        )
        self.online_timeout = online_timeout or timedelta(
            minutes=context.settings.ONLINE_TIMEOUT_MINUTES
        )

        self.presence: dict[UUID, PresenceRead] = {}
        self._subscription: Subscription | None = None
        self._heartbeat: asyncio.Task | None = None

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.context.hub.subscribe(
                PresenceRepository.collection,
                self._on_presence_change,
                event_types=[ChangeEventType.INSERT, ChangeEventType.UPDATE],
            )
        await self.update_presence(True)
        if self._heartbeat is None:
            self._heartbeat = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        # Unsubscribe before the first await so no event lands after teardown
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(
                    f"Heartbeat for user {self.user_id} had stopped: {e}", exc_info=True
                )
            self._heartbeat = None
        await self.update_presence(False)

    async def __aenter__(self) -> "PresenceTracker":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.update_presence(True)
            except Exception as e:
                logger.warning(
                    f"Heartbeat for user {self.user_id} failed: {e}", exc_info=True
                )

    async def update_presence(self, is_online: bool) -> PresenceRead | None:
        """Upserts the user's own presence row; failures wait for the next beat."""
        try:
            async with self.store.transaction() as session:
                row = await PresenceRepository(session).upsert_presence(
                    self.user_id, is_online
                )
                record = PresenceRead.model_validate(row)
        except SQLAlchemyError as e:
            logger.warning(f"Error updating presence for user {self.user_id}: {e}")
            return None

        self.presence[self.user_id] = record
        return record

    async def set_visibility(self, visible: bool) -> None:
        await self.update_presence(visible)

    def is_user_online(self, user_id: UUID, now: datetime | None = None) -> bool:
        """Online means flagged online and seen strictly less than the timeout ago."""
        presence = self.presence.get(user_id)
        if presence is None or not presence.is_online:
            return False
        now = now or datetime.now(timezone.utc)
        return presence.last_seen > now - self.online_timeout

    def get_last_seen(self, user_id: UUID) -> datetime | None:
        presence = self.presence.get(user_id)
        return presence.last_seen if presence else None

    async def fetch_presence(self, user_ids: Iterable[UUID]) -> None:
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return

        try:
            async with self.store.session() as session:
                rows = await PresenceRepository(session).get_presence_for_users(
                    user_ids
                )
                records = [PresenceRead.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            logger.warning(f"Error fetching presence for {len(user_ids)} users: {e}")
            return

        for record in records:
            self.presence[record.user_id] = record

    def _on_presence_change(self, event: ChangeEvent) -> None:
        record = PresenceRead.model_validate(event.new_record)
        self.presence[record.user_id] = record
