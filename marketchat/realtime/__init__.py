from .events import ChangeEvent, ChangeEventType
from .hub import ChangeHandler, LocalRealtimeHub, Subscription


def create_hub(settings) -> LocalRealtimeHub:
    """Redis-backed hub when REALTIME_REDIS_URL is configured, else in-process."""
    if settings.REALTIME_REDIS_URL:
        from .redis_hub import RedisRealtimeHub

        return RedisRealtimeHub(settings.REALTIME_REDIS_URL)
    return LocalRealtimeHub()


__all__ = [
    "ChangeEvent",
    "ChangeEventType",
    "ChangeHandler",
    "LocalRealtimeHub",
    "Subscription",
    "create_hub",
]
