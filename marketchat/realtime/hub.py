import inspect
import logging
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Iterable

from .events import ChangeEvent, ChangeEventType

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None] | None]


class Subscription:
    """Handle for one registered change handler.

    Closing is synchronous and idempotent; once closed the handler receives
    nothing more, even from a dispatch that is already in progress.
    """

    def __init__(
        self,
        hub: "LocalRealtimeHub",
        collection: str,
        handler: ChangeHandler,
        event_types: frozenset[ChangeEventType] | None = None,
        filter: tuple[str, Any] | None = None,
    ):
        self.hub = hub
        self.collection = collection
        self.handler = handler
        self.event_types = event_types
        self.filter = filter
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if event.collection != self.collection:
            return False
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.filter is not None:
            column, value = self.filter
            return str(event.new_record.get(column)) == str(value)
        return True

    def close(self) -> None:
        self.hub.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.collection} {state}>"


class LocalRealtimeHub:
    """In-process publish/subscribe of change events, keyed by collection."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._pending: deque[ChangeEvent] = deque()
        self._dispatching = False

    def subscribe(
        self,
        collection: str,
        handler: ChangeHandler,
        event_types: Iterable[ChangeEventType | str] | None = None,
        filter: tuple[str, Any] | None = None,
    ) -> Subscription:
        types = (
            frozenset(ChangeEventType(t) for t in event_types)
            if event_types is not None
            else None
        )
        subscription = Subscription(self, collection, handler, types, filter)
        self._subscriptions[collection].append(subscription)
        logger.debug(f"Subscribed to '{collection}' changes")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        try:
            self._subscriptions[subscription.collection].remove(subscription)
        except ValueError:
            pass
        logger.debug(f"Unsubscribed from '{subscription.collection}' changes")

    def subscription_count(self, collection: str | None = None) -> int:
        if collection is not None:
            return len(self._subscriptions.get(collection, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def publish(self, event: ChangeEvent) -> None:
        # Events published from inside a handler are queued behind the one
        # being delivered, so every subscriber sees the same order.
        self._pending.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                await self.dispatch(self._pending.popleft())
        finally:
            self._dispatching = False

    async def dispatch(self, event: ChangeEvent) -> None:
        """Deliver an event to every matching subscription, in subscription order."""
        for subscription in list(self._subscriptions.get(event.collection, ())):
            if not subscription.active or not subscription.matches(event):
                continue
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Change handler failed for {event.event_type.value} on "
                    f"'{event.collection}': {e}",
                    exc_info=True,
                )

    async def start(self) -> None:
        return

    async def aclose(self) -> None:
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                subscription.close()
