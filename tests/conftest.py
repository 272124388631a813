import os

os.environ.setdefault("SECRET", "test-secret")

import uuid
from typing import AsyncGenerator, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from test_helpers import RecordingNotifier

from marketchat.db import DataStore, create_tables, make_engine, make_session_maker
from marketchat.realtime import LocalRealtimeHub
from marketchat.services.context import SessionContext
from marketchat.storage import LocalStorageClient

TEST_SECRET = "test-secret"


# A file-backed SQLite database: concurrent enrichment reads each open their
# own connection, which an in-memory database would not survive.
@pytest.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketchat.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def db_test_session_manager(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_maker(engine)


@pytest.fixture(scope="function")
def hub() -> LocalRealtimeHub:
    return LocalRealtimeHub()


@pytest.fixture(scope="function")
def store(
    db_test_session_manager: async_sessionmaker[AsyncSession], hub: LocalRealtimeHub
) -> DataStore:
    return DataStore(db_test_session_manager, hub)


@pytest.fixture(scope="function")
def storage(tmp_path) -> LocalStorageClient:
    return LocalStorageClient(
        root=tmp_path / "attachments", secret=TEST_SECRET, base_url="http://test"
    )


@pytest.fixture(scope="function")
def make_context(
    store: DataStore, storage: LocalStorageClient
) -> Callable[[uuid.UUID], SessionContext]:
    """Builds a session context per simulated user, all sharing one store and hub."""

    def _make(user_id: uuid.UUID) -> SessionContext:
        return SessionContext(
            user_id=user_id,
            store=store,
            storage=storage,
            notifier=RecordingNotifier(),
        )

    return _make


@pytest.fixture(scope="function")
def buyer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture(scope="function")
def seller_id() -> uuid.UUID:
    return uuid.uuid4()
