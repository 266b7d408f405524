"""Test fixtures for parley."""

from collections.abc import AsyncGenerator

import aiosqlite
import anyio
import pytest

from parley.events import OutboundEvent
from parley.gateway import MessageGateway
from parley.models import User
from parley.registry import MembershipRegistry
from parley.session import Session
from parley.store import SQLChannelStore, SQLiteDialect, StoreConfig


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """Create an in-memory SQLite connection for testing."""
    conn = await aiosqlite.connect(":memory:")
    try:
        yield conn
    finally:
        await conn.close()


@pytest.fixture
def store_config() -> StoreConfig:
    """Store configuration without seeded channels."""
    return StoreConfig(database=":memory:", seed_default_channels=False)


@pytest.fixture
async def store(
    sqlite_connection: aiosqlite.Connection, store_config: StoreConfig
) -> AsyncGenerator[SQLChannelStore, None]:
    """Create an initialized SQLite channel store."""
    async with SQLChannelStore(
        sqlite_connection, SQLiteDialect(), store_config
    ) as store:
        yield store


@pytest.fixture
async def alice(store: SQLChannelStore) -> User:
    return await store.add_user("alice", "https://example.com/alice.png")


@pytest.fixture
async def bob(store: SQLChannelStore) -> User:
    return await store.add_user("bob", "https://example.com/bob.png")


@pytest.fixture
async def carol(store: SQLChannelStore) -> User:
    return await store.add_user("carol")


@pytest.fixture
def registry() -> MembershipRegistry:
    return MembershipRegistry()


@pytest.fixture
def gateway(store: SQLChannelStore, registry: MembershipRegistry) -> MessageGateway:
    return MessageGateway(store, registry)


def drain(session: Session) -> list[OutboundEvent]:
    """Take every event currently queued for *session*."""
    events: list[OutboundEvent] = []
    while True:
        try:
            events.append(session._receive.receive_nowait())
        except (anyio.WouldBlock, anyio.EndOfStream, anyio.ClosedResourceError):
            return events
