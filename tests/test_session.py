import uuid

import pytest
from test_helpers import create_test_conversation, create_test_profile

from marketchat.services.presence_service import PresenceTracker
from marketchat.services.session import MessagingSession

pytestmark = pytest.mark.asyncio


async def test_session_tracks_counterpart_presence(
    make_context, db_test_session_manager, buyer_id, seller_id, hub
):
    """Entering a session loads the inbox and the presence of everyone in it."""
    await create_test_profile(db_test_session_manager, seller_id, "Sade Seller")
    conversation = await create_test_conversation(
        db_test_session_manager, buyer_id, seller_id
    )

    async with PresenceTracker(make_context(seller_id), heartbeat_interval=3600):
        async with MessagingSession(
            make_context(buyer_id), heartbeat_interval=3600
        ) as session:
            assert [c.id for c in session.coordinator.conversations] == [
                conversation.id
            ]
            assert session.is_online(seller_id) is True
            assert session.is_online(buyer_id) is True

        assert hub.subscription_count("messages") == 0
        assert hub.subscription_count("user_presence") == 1


async def test_session_sees_counterpart_go_offline(
    make_context, db_test_session_manager, buyer_id, seller_id
):
    await create_test_profile(db_test_session_manager, seller_id)
    await create_test_conversation(db_test_session_manager, buyer_id, seller_id)
    seller_presence = PresenceTracker(make_context(seller_id), heartbeat_interval=3600)
    await seller_presence.start()

    async with MessagingSession(make_context(buyer_id), heartbeat_interval=3600) as session:
        assert session.is_online(seller_id) is True
        await seller_presence.stop()
        assert session.is_online(seller_id) is False


async def test_contact_seller_starts_and_opens_conversation(
    make_context, db_test_session_manager, buyer_id, seller_id
):
    await create_test_profile(db_test_session_manager, seller_id, "Sade Seller")

    async with MessagingSession(make_context(buyer_id), heartbeat_interval=3600) as session:
        conversation = await session.contact_seller(seller_id)
        again = await session.contact_seller(seller_id)

        assert conversation.id == again.id
        assert session.coordinator.active_conversation.id == conversation.id
        assert session.coordinator.active_conversation.other_user.full_name == (
            "Sade Seller"
        )
        await session.coordinator.send_message(conversation.id, "Hi, is it available?")
        assert [m.content for m in session.coordinator.messages] == [
            "Hi, is it available?"
        ]


async def test_contact_seller_refused_for_self(make_context, buyer_id):
    async with MessagingSession(make_context(buyer_id), heartbeat_interval=3600) as session:
        assert await session.contact_seller(buyer_id) is None
        assert session.coordinator.active_conversation is None


async def test_refresh_picks_up_new_conversations(
    make_context, db_test_session_manager, buyer_id
):
    async with MessagingSession(make_context(buyer_id), heartbeat_interval=3600) as session:
        assert session.coordinator.conversations == []
        other = uuid.uuid4()
        await create_test_conversation(db_test_session_manager, other, buyer_id)

        await session.refresh()

        assert session.coordinator.counterpart_ids() == [other]
        assert len(session.coordinator.conversations) == 1
        assert session.is_online(other) is False
