import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .core.config import settings
from .models import metadata
from .realtime import ChangeEvent, LocalRealtimeHub, create_hub

load_dotenv()

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "pending_changes"


def make_engine(database_url: str | None = None) -> AsyncEngine:
    return create_async_engine(database_url or settings.DATABASE_URL)


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def record_change(session: AsyncSession, event: ChangeEvent) -> None:
    """Queue a change event to be published once the session commits."""
    session.info.setdefault(PENDING_CHANGES_KEY, []).append(event)


class DataStore:
    """Unit of work over the messaging tables.

    Writes go through ``transaction()``: the change events recorded by the
    repositories are published on the realtime hub only after the commit
    succeeds, in the order they were recorded. Rolled-back work publishes
    nothing.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        hub: LocalRealtimeHub,
        engine: AsyncEngine | None = None,
    ):
        self.session_maker = session_maker
        self.hub = hub
        self.engine = engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                session.info.pop(PENDING_CHANGES_KEY, None)
                raise
            changes = session.info.pop(PENDING_CHANGES_KEY, [])

        for event in changes:
            await self.hub.publish(event)

    async def aclose(self) -> None:
        await self.hub.aclose()
        if self.engine is not None:
            await self.engine.dispose()


async def open_data_store(config=None) -> DataStore:
    """Store on a new engine with the configured realtime hub, already listening.

    Uses a Redis hub when REALTIME_REDIS_URL is set, otherwise an in-process one.
    Close it with ``aclose()``.
    """
    config = config or settings
    engine = make_engine(config.DATABASE_URL)
    hub = create_hub(config)
    try:
        await hub.start()
    except Exception:
        await engine.dispose()
        raise
    logger.info(f"Data store ready with {type(hub).__name__}")
    return DataStore(make_session_maker(engine), hub, engine=engine)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def check_database_health(
    engine: AsyncEngine, skip_table_check: bool = False
) -> bool:
    """
    Check if the database connection is working and all required tables exist.
    Returns True if healthy, raises an exception if not.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")

            if skip_table_check:
                return True

            expected_tables = set(metadata.tables.keys())
            existing_tables = set(
                await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            )
            missing_tables = expected_tables - existing_tables

            if missing_tables:
                logger.error(f"Missing required tables: {missing_tables}")
                raise RuntimeError(
                    f"Database migration required. Missing tables: {missing_tables}"
                )

            logger.info(f"All required tables present: {expected_tables}")
            return True

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise
