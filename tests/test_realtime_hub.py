import asyncio
import uuid
from types import SimpleNamespace

import pytest
from test_helpers import DownRedis, FakeRedis

from marketchat.realtime import (
    ChangeEvent,
    ChangeEventType,
    LocalRealtimeHub,
    create_hub,
)
from marketchat.realtime.redis_hub import RedisRealtimeHub

pytestmark = pytest.mark.asyncio


def make_event(
    collection="messages", event_type=ChangeEventType.INSERT, **record
) -> ChangeEvent:
    record.setdefault("id", str(uuid.uuid4()))
    return ChangeEvent(collection=collection, event_type=event_type, new_record=record)


# --- Local hub ---


async def test_delivers_by_collection_and_event_type():
    hub = LocalRealtimeHub()
    everything, updates_only, presence = [], [], []
    hub.subscribe("messages", everything.append)
    hub.subscribe("messages", updates_only.append, event_types=["update"])
    hub.subscribe("user_presence", presence.append)

    insert = make_event()
    update = make_event(event_type=ChangeEventType.UPDATE)
    await hub.publish(insert)
    await hub.publish(update)

    assert everything == [insert, update]
    assert updates_only == [update]
    assert presence == []


async def test_filter_matches_on_new_record_column():
    hub = LocalRealtimeHub()
    conversation_id = uuid.uuid4()
    received = []
    hub.subscribe(
        "messages", received.append, filter=("conversation_id", conversation_id)
    )

    wanted = make_event(conversation_id=str(conversation_id))
    await hub.publish(wanted)
    await hub.publish(make_event(conversation_id=str(uuid.uuid4())))

    assert received == [wanted]


async def test_async_handlers_are_awaited_in_subscription_order():
    hub = LocalRealtimeHub()
    calls = []

    async def first(event):
        await asyncio.sleep(0)
        calls.append("first")

    def second(event):
        calls.append("second")

    hub.subscribe("messages", first)
    hub.subscribe("messages", second)
    await hub.publish(make_event())

    assert calls == ["first", "second"]


async def test_failing_handler_does_not_block_others(caplog):
    hub = LocalRealtimeHub()
    received = []

    def broken(event):
        raise RuntimeError("render failed")

    hub.subscribe("messages", broken)
    hub.subscribe("messages", received.append)
    event = make_event()
    await hub.publish(event)

    assert received == [event]
    assert "Change handler failed for insert on 'messages'" in caplog.text


async def test_close_is_idempotent_and_immediate():
    hub = LocalRealtimeHub()
    received = []
    subscription = hub.subscribe("messages", received.append)

    subscription.close()
    subscription.close()
    hub.unsubscribe(subscription)
    await hub.publish(make_event())

    assert received == []
    assert subscription.active is False
    assert hub.subscription_count() == 0


async def test_subscription_closed_mid_dispatch_misses_the_event():
    hub = LocalRealtimeHub()
    received = []
    later = None

    def closer(event):
        later.close()

    hub.subscribe("messages", closer)
    later = hub.subscribe("messages", received.append)
    await hub.publish(make_event())

    assert received == []


async def test_subscription_as_context_manager():
    hub = LocalRealtimeHub()
    with hub.subscribe("messages", lambda event: None):
        assert hub.subscription_count("messages") == 1

    assert hub.subscription_count("messages") == 0


async def test_events_published_by_handlers_are_delivered_in_order():
    """Every subscriber sees an insert before the update it caused."""
    hub = LocalRealtimeHub()
    insert = make_event()
    update = make_event(event_type=ChangeEventType.UPDATE, id=insert.new_record["id"])
    seen = []

    async def reader(event):
        if event.event_type == ChangeEventType.INSERT:
            await hub.publish(update)

    hub.subscribe("messages", reader)
    hub.subscribe("messages", lambda event: seen.append(event.event_type))
    await hub.publish(insert)

    assert seen == [ChangeEventType.INSERT, ChangeEventType.UPDATE]


async def test_aclose_closes_every_subscription():
    hub = LocalRealtimeHub()
    subscriptions = [
        hub.subscribe("messages", lambda event: None),
        hub.subscribe("user_presence", lambda event: None),
    ]

    await hub.aclose()

    assert hub.subscription_count() == 0
    assert not any(s.active for s in subscriptions)


# --- Redis hub ---


async def wait_for(predicate, attempts=100):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not met in time")


async def test_redis_hub_round_trips_events_through_channels():
    client = FakeRedis()
    hub = RedisRealtimeHub(client=client)
    await hub.start()
    received = []
    hub.subscribe("messages", received.append)

    event = make_event(content="Hello")
    await hub.publish(event)
    await wait_for(lambda: received)

    assert received == [event]
    assert client.published[0][0] == "realtime:messages"
    assert client.pubsubs[0].patterns == ["realtime:*"]

    await hub.aclose()
    assert client.closed is True
    assert client.pubsubs == []


async def test_redis_hub_drops_malformed_payloads(caplog):
    client = FakeRedis()
    hub = RedisRealtimeHub(client=client)
    await hub.start()
    received = []
    hub.subscribe("messages", received.append)

    client.pubsubs[0].queue.put_nowait({"type": "pmessage", "data": b"not json"})
    client.pubsubs[0].queue.put_nowait({"type": "psubscribe", "data": 1})
    event = make_event()
    await hub.publish(event)
    await wait_for(lambda: received)

    assert received == [event]
    assert "Dropping malformed change event" in caplog.text
    await hub.aclose()


async def test_redis_hub_requires_url_or_client():
    with pytest.raises(ValueError):
        RedisRealtimeHub()


async def test_create_hub_picks_backend_from_settings():
    local = create_hub(SimpleNamespace(REALTIME_REDIS_URL=None))
    remote = create_hub(SimpleNamespace(REALTIME_REDIS_URL="redis://localhost:6379/0"))

    assert type(local) is LocalRealtimeHub
    assert isinstance(remote, RedisRealtimeHub)
    await remote.aclose()


async def test_redis_hub_skips_payloads_that_are_not_utf8(caplog):
    """Undecodable bytes are logged and the listener keeps delivering."""
    client = FakeRedis()
    hub = RedisRealtimeHub(client=client)
    await hub.start()
    received = []
    hub.subscribe("messages", received.append)

    client.pubsubs[0].queue.put_nowait({"type": "pmessage", "data": b"\xff\xfe"})
    event = make_event()
    await hub.publish(event)
    await wait_for(lambda: received)

    assert received == [event]
    assert "Dropping malformed change event" in caplog.text
    await hub.aclose()


async def test_redis_publish_failure_is_logged_and_delivered_locally(caplog):
    """A Redis outage never reaches the publisher; local subscribers still hear it."""
    hub = RedisRealtimeHub(client=DownRedis())
    await hub.start()
    received = []
    hub.subscribe("messages", received.append)

    event = make_event()
    await hub.publish(event)

    assert received == [event]
    assert "Failed to publish insert on 'messages' to Redis" in caplog.text
    await hub.aclose()
