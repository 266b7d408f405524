"""Tests for SQLChannelStore."""

import sqlite3
from typing import Any

import aiosqlite
import anyio
import pytest

from parley.errors import Conflict, InvalidInput, NotFound, StoreUnavailable
from parley.models import ChannelKind, User
from parley.store import SQLChannelStore, SQLiteDialect, StoreConfig

pytestmark = pytest.mark.anyio

HISTORY_LIMIT = 2
CONCURRENT_WRITERS = 5
MESSAGES_PER_WRITER = 10


class BrokenConnection:
    """Connection whose every statement fails like an unreachable database."""

    row_factory: Any = None

    async def execute(self, query: str, params: Any = ()) -> Any:
        raise sqlite3.OperationalError("disk I/O error")

    async def commit(self) -> None:
        raise sqlite3.OperationalError("disk I/O error")

    async def rollback(self) -> None:
        pass


class TestUsers:
    async def test_add_and_get_user(self, store: SQLChannelStore) -> None:
        user = await store.add_user("dave", "https://example.com/d.png")
        assert await store.get_user(user.id) == user

    async def test_default_avatar(self, store: SQLChannelStore) -> None:
        user = await store.add_user("erin")
        assert user.avatar_url == "https://api.dicebear.com/7.x/avataaars/svg?seed=erin"

    async def test_duplicate_username_conflicts(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        with pytest.raises(Conflict):
            await store.add_user("alice")

    async def test_unknown_user(self, store: SQLChannelStore) -> None:
        with pytest.raises(NotFound):
            await store.get_user(404)


class TestCreateChannel:
    async def test_create_public_channel(self, store: SQLChannelStore) -> None:
        channel = await store.create_channel(
            "general", ChannelKind.PUBLIC, description="General discussion"
        )
        assert channel.name == "general"
        assert not channel.has_secret
        assert await store.get_channel(channel.id) == channel

    async def test_secret_is_stored_hashed(self, store: SQLChannelStore) -> None:
        channel = await store.create_channel(
            "secret-room", ChannelKind.PUBLIC, secret="pw123"
        )
        stored = await store.get_channel(channel.id)
        assert stored.has_secret
        assert stored.secret_hash != "pw123"
        assert "pw123" not in (stored.secret_hash or "")

    async def test_ids_are_unique(self, store: SQLChannelStore) -> None:
        first = await store.create_channel("a", ChannelKind.PUBLIC)
        second = await store.create_channel("a", ChannelKind.PUBLIC)
        assert first.id != second.id

    async def test_empty_name_rejected(self, store: SQLChannelStore) -> None:
        with pytest.raises(InvalidInput):
            await store.create_channel("   ", ChannelKind.PUBLIC)
        assert await store.get_channels_visible_to() == []

    async def test_private_channel_without_participants_rejected(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        with pytest.raises(InvalidInput):
            await store.create_channel("dm", ChannelKind.PRIVATE, participant_ids=[])
        assert await store.get_channels_visible_to(alice.id) == []

    async def test_unknown_participant_rolls_back_channel(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        with pytest.raises(NotFound):
            await store.create_channel(
                "dm", ChannelKind.PRIVATE, participant_ids=[alice.id, 404]
            )
        assert await store.get_channels_visible_to(alice.id) == []
        # The rolled-back row left nothing behind for later channels either
        channel = await store.create_channel("next", ChannelKind.PUBLIC)
        assert [c.id for c in await store.get_channels_visible_to()] == [channel.id]

    async def test_private_channel_records_participants(
        self, store: SQLChannelStore, alice: User, bob: User
    ) -> None:
        channel = await store.create_channel(
            "dm", ChannelKind.PRIVATE, participant_ids=[alice.id, bob.id]
        )
        stored = await store.get_channel(channel.id)
        assert stored.participant_ids == {alice.id, bob.id}

    async def test_private_channel_drops_secret(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        channel = await store.create_channel(
            "dm", ChannelKind.PRIVATE, secret="pw123", participant_ids=[alice.id]
        )
        stored = await store.get_channel(channel.id)
        assert stored.secret_hash is None
        assert not stored.view().has_secret

    async def test_public_channel_ignores_participants(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        channel = await store.create_channel(
            "general", ChannelKind.PUBLIC, participant_ids=[alice.id]
        )
        assert (await store.get_channel(channel.id)).participant_ids == frozenset()

    async def test_unknown_channel(self, store: SQLChannelStore) -> None:
        with pytest.raises(NotFound):
            await store.get_channel(404)


class TestVisibility:
    async def test_visibility_rules(
        self, store: SQLChannelStore, alice: User, bob: User
    ) -> None:
        general = await store.create_channel("general", ChannelKind.PUBLIC)
        room = await store.create_channel("room", ChannelKind.PUBLIC, secret="pw")
        dm = await store.create_channel(
            "dm", ChannelKind.PRIVATE, participant_ids=[alice.id]
        )

        anonymous = await store.get_channels_visible_to()
        assert [c.id for c in anonymous] == [general.id, room.id]

        for_alice = await store.get_channels_visible_to(alice.id)
        assert [c.id for c in for_alice] == [general.id, room.id, dm.id]
        assert for_alice[2].participant_ids == {alice.id}

        for_bob = await store.get_channels_visible_to(bob.id)
        assert [c.id for c in for_bob] == [general.id, room.id]


class TestMessages:
    async def test_append_assigns_id_and_timestamp(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)
        first = await store.append_message(channel.id, alice.id, "hi")
        second = await store.append_message(channel.id, alice.id, "there")
        assert second.id > first.id
        assert second.created_at >= first.created_at
        assert first.created_at.tzinfo is not None
        assert first.username == "alice"
        assert first.avatar_url == alice.avatar_url

    async def test_unknown_channel(self, store: SQLChannelStore, alice: User) -> None:
        with pytest.raises(NotFound):
            await store.append_message(404, alice.id, "hi")

    async def test_unknown_author(self, store: SQLChannelStore) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)
        with pytest.raises(NotFound):
            await store.append_message(channel.id, 404, "hi")
        assert await store.get_history(channel.id) == []

    @pytest.mark.parametrize("content", ["", "   ", "\n"])
    async def test_empty_content_rejected(
        self, store: SQLChannelStore, alice: User, content: str
    ) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)
        with pytest.raises(InvalidInput):
            await store.append_message(channel.id, alice.id, content)
        assert await store.get_history(channel.id) == []

    async def test_history_is_ordered_and_scoped(
        self, store: SQLChannelStore, alice: User, bob: User
    ) -> None:
        general = await store.create_channel("general", ChannelKind.PUBLIC)
        random = await store.create_channel("random", ChannelKind.PUBLIC)
        await store.append_message(general.id, alice.id, "one")
        await store.append_message(random.id, bob.id, "elsewhere")
        await store.append_message(general.id, bob.id, "two")

        history = await store.get_history(general.id)
        assert [m.content for m in history] == ["one", "two"]
        assert [m.username for m in history] == ["alice", "bob"]

    async def test_history_limit_keeps_most_recent(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)
        for content in ("one", "two", "three"):
            await store.append_message(channel.id, alice.id, content)

        history = await store.get_history(channel.id, limit=HISTORY_LIMIT)
        assert [m.content for m in history] == ["two", "three"]

    async def test_history_reflects_current_avatar(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)
        await store.append_message(channel.id, alice.id, "hi")
        await store.set_avatar(alice.id, "https://example.com/new.png")

        history = await store.get_history(channel.id)
        assert history[0].avatar_url == "https://example.com/new.png"

    async def test_history_of_unknown_channel(self, store: SQLChannelStore) -> None:
        with pytest.raises(NotFound):
            await store.get_history(404)

    async def test_concurrent_appends_are_serialized(
        self, store: SQLChannelStore, alice: User
    ) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)

        async def writer(writer_id: int) -> None:
            for i in range(MESSAGES_PER_WRITER):
                await store.append_message(channel.id, alice.id, f"{writer_id}-{i}")

        async with anyio.create_task_group() as tg:
            for writer_id in range(CONCURRENT_WRITERS):
                tg.start_soon(writer, writer_id)

        history = await store.get_history(channel.id)
        ids = [m.id for m in history]
        timestamps = [m.created_at for m in history]
        assert len(history) == CONCURRENT_WRITERS * MESSAGES_PER_WRITER
        assert ids == sorted(set(ids))
        assert timestamps == sorted(timestamps)


class TestVerifySecret:
    async def test_verify_secret(self, store: SQLChannelStore) -> None:
        channel = await store.create_channel("room", ChannelKind.PUBLIC, secret="pw123")
        assert await store.verify_secret(channel.id, "pw123")
        assert not await store.verify_secret(channel.id, "wrong")
        assert not await store.verify_secret(channel.id, None)

    async def test_channel_without_secret_never_matches(
        self, store: SQLChannelStore
    ) -> None:
        channel = await store.create_channel("general", ChannelKind.PUBLIC)
        assert not await store.verify_secret(channel.id, "")
        assert not await store.verify_secret(channel.id, None)

    async def test_unknown_channel(self, store: SQLChannelStore) -> None:
        with pytest.raises(NotFound):
            await store.verify_secret(404, "pw")


class TestInitialize:
    async def test_seeds_default_channels_once(
        self, sqlite_connection: aiosqlite.Connection
    ) -> None:
        config = StoreConfig(database=":memory:", seed_default_channels=True)
        store = SQLChannelStore(sqlite_connection, SQLiteDialect(), config)
        await store.initialize()
        await store.initialize()

        channels = await store.get_channels_visible_to()
        assert [c.name for c in channels] == ["general", "random"]
        assert channels[0].description == "General discussion"

    async def test_table_prefix(self, sqlite_connection: aiosqlite.Connection) -> None:
        config = StoreConfig(table_prefix="chat_", seed_default_channels=False)
        async with SQLChannelStore(sqlite_connection, config=config) as store:
            await store.create_channel("general", ChannelKind.PUBLIC)

        cursor = await sqlite_connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            ("chat_channels",),
        )
        assert await cursor.fetchone() is not None

    async def test_closed_store_raises(self, store: SQLChannelStore) -> None:
        await store.close()
        with pytest.raises(RuntimeError, match="closed"):
            await store.get_channels_visible_to()


class TestStoreUnavailable:
    async def test_driver_errors_become_store_unavailable(self) -> None:
        store = SQLChannelStore(BrokenConnection())  # type: ignore[arg-type]
        with pytest.raises(StoreUnavailable):
            await store.get_channel(1)
        with pytest.raises(StoreUnavailable):
            await store.append_message(1, 1, "hi")
        with pytest.raises(StoreUnavailable):
            await store.create_channel("general", ChannelKind.PUBLIC)
