import asyncio
import logging

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from .events import ChangeEvent
from .hub import LocalRealtimeHub

logger = logging.getLogger(__name__)


class RedisRealtimeHub(LocalRealtimeHub):
    """Fans change events out through Redis pub/sub.

    Events are published to ``realtime:<collection>``. A listener task
    receives every such channel and dispatches to the local subscriptions,
    so handlers registered in any process see changes made in any other.
    """

    channel_prefix = "realtime:"

    def __init__(self, url: str | None = None, client=None) -> None:
        super().__init__()
        if client is None and not url:
            raise ValueError("RedisRealtimeHub needs a Redis URL or client")
        self._redis = client if client is not None else redis.from_url(url)
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    def channel_name(self, collection: str) -> str:
        return f"{self.channel_prefix}{collection}"

    async def start(self) -> None:
        if self._listener is not None:
            return
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(f"{self.channel_prefix}*")
        self._listener = asyncio.create_task(self._listen())
        logger.info("Realtime listener started")

    async def publish(self, event: ChangeEvent) -> None:
        """Fan an event out through Redis; if Redis is down, deliver it locally."""
        try:
            await self._redis.publish(
                self.channel_name(event.collection), event.model_dump_json()
            )
        except RedisError as e:
            logger.error(
                f"Failed to publish {event.event_type.value} on "
                f"'{event.collection}' to Redis: {e}",
                exc_info=True,
            )
            await super().publish(event)

    async def _listen(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
            except RedisError as e:
                logger.warning(f"Realtime listener read failed: {e}")
                await asyncio.sleep(0.5)
                continue

            if not message or message.get("type") not in ("message", "pmessage"):
                continue

            try:
                event = ChangeEvent.model_validate_json(message.get("data"))
            except (ValidationError, UnicodeDecodeError) as e:
                logger.warning(f"Dropping malformed change event: {e}")
                continue

            await self.dispatch(event)

    async def aclose(self) -> None:
        await super().aclose()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.punsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        await self._redis.aclose()
        logger.info("Realtime listener stopped")
