"""SQL channel store implementation."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import aiosqlite
import anyio
import anyio.to_thread

from parley.errors import Conflict, InvalidInput, NotFound, StoreUnavailable
from parley.hashing import hash_secret, secret_matches
from parley.models import Channel, ChannelKind, ChatMessage, User
from parley.store.config import StoreConfig
from parley.store.dialect import ChatQueries, Dialect, SQLiteDialect

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = (
    ("general", "General discussion"),
    ("random", "Random chatter"),
)
DEFAULT_AVATAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={username}"


class SQLChannelStore:
    """Channel store backed by a single aiosqlite connection.

    Every statement runs under one lock: a multi-statement transaction is
    never observed half-applied, and message inserts are serialized so ids
    and timestamps grow together within each channel.
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        dialect: Dialect | None = None,
        config: StoreConfig | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            connection: Open aiosqlite connection. The store does not close it.
            dialect: SQL dialect for query generation.
            config: Store configuration.
        """
        self._connection = connection
        self._config = config or StoreConfig()
        self._queries: ChatQueries = (dialect or SQLiteDialect()).queries(
            self._config.table_prefix
        )
        self._lock = anyio.Lock()
        self._closed = False
        self._last_created_at: dict[int, datetime] = {}
        self._connection.row_factory = aiosqlite.Row

    async def initialize(self) -> None:
        """Create the schema and seed default channels if configured."""
        async with self._locked():
            await self._execute(self._queries.enable_foreign_keys)
            if self._config.auto_create_tables:
                for statement in self._queries.create_schema:
                    await self._execute(statement)
                await self._commit()

        if self._config.seed_default_channels:
            await self._seed_default_channels()

    async def _seed_default_channels(self) -> None:
        async with self._transaction():
            row = await self._fetch_one(self._queries.count_channels)
            if row[0]:
                return
            for name, description in DEFAULT_CHANNELS:
                await self._execute(
                    self._queries.insert_channel,
                    (name, description, ChannelKind.PUBLIC.value, None),
                )
            logger.info("Seeded default channels")

    # -- connection helpers -------------------------------------------------

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        """Hold the connection lock."""
        if self._closed:
            msg = "Store is closed"
            raise RuntimeError(msg)
        async with self._lock:
            yield

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Hold the connection lock for a transaction; roll back on error."""
        async with self._locked():
            try:
                yield
            except BaseException:
                with anyio.CancelScope(shield=True):
                    await self._rollback()
                raise
            await self._commit()

    async def _execute(self, query: str, params: Sequence[Any] = ()) -> Any:
        """Execute a query, translating driver failures."""
        try:
            return await self._connection.execute(query, params)
        except aiosqlite.IntegrityError:
            raise
        except (aiosqlite.Error, ValueError) as e:
            raise StoreUnavailable(str(e)) from e

    async def _fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[Any]:
        """Fetch all rows from a query."""
        cursor = await self._execute(query, params)
        try:
            return list(await cursor.fetchall())
        except (aiosqlite.Error, ValueError) as e:
            raise StoreUnavailable(str(e)) from e

    async def _fetch_one(self, query: str, params: Sequence[Any] = ()) -> Any:
        """Fetch the first row from a query, or None."""
        cursor = await self._execute(query, params)
        try:
            return await cursor.fetchone()
        except (aiosqlite.Error, ValueError) as e:
            raise StoreUnavailable(str(e)) from e

    async def _commit(self) -> None:
        try:
            await self._connection.commit()
        except (aiosqlite.Error, ValueError) as e:
            raise StoreUnavailable(str(e)) from e

    async def _rollback(self) -> None:
        try:
            await self._connection.rollback()
        except (aiosqlite.Error, ValueError):
            logger.exception("Rollback failed")

    # -- users --------------------------------------------------------------

    async def add_user(self, username: str, avatar_url: str | None = None) -> User:
        """Record an identity. Stands in for the external auth layer."""
        username = username.strip()
        if not username:
            msg = "Username must not be empty"
            raise InvalidInput(msg)
        avatar_url = avatar_url or DEFAULT_AVATAR_URL.format(username=username)

        async with self._transaction():
            try:
                cursor = await self._execute(
                    self._queries.insert_user, (username, avatar_url)
                )
            except aiosqlite.IntegrityError as e:
                msg = f"Username {username!r} already exists"
                raise Conflict(msg) from e
            user_id = cursor.lastrowid

        return User(id=user_id, username=username, avatar_url=avatar_url)

    async def get_user(self, user_id: int) -> User:
        """Get a user by id."""
        async with self._locked():
            row = await self._fetch_one(self._queries.select_user, (user_id,))
        if row is None:
            msg = f"User {user_id} not found"
            raise NotFound(msg)
        return User(id=row["id"], username=row["username"], avatar_url=row["avatar_url"])

    async def set_avatar(self, user_id: int, avatar_url: str | None) -> User:
        """Change a user's avatar. History reads pick it up immediately."""
        async with self._transaction():
            cursor = await self._execute(
                self._queries.update_avatar, (avatar_url, user_id)
            )
            if cursor.rowcount == 0:
                msg = f"User {user_id} not found"
                raise NotFound(msg)
        return await self.get_user(user_id)

    # -- channels -----------------------------------------------------------

    async def create_channel(
        self,
        name: str,
        kind: ChannelKind,
        description: str | None = None,
        secret: str | None = None,
        participant_ids: Iterable[int] | None = None,
    ) -> Channel:
        """Create a channel, atomically with its participant set.

        A private channel must have participants; an unknown participant id
        rolls back the whole channel.
        """
        name = name.strip()
        if not name:
            msg = "Channel name must not be empty"
            raise InvalidInput(msg)

        kind = ChannelKind(kind)
        participants = frozenset(participant_ids or ())
        if kind is ChannelKind.PRIVATE and not participants:
            msg = "Private channel needs at least one participant"
            raise InvalidInput(msg)
        if kind is ChannelKind.PUBLIC:
            participants = frozenset()
        else:
            # Private channels admit by participation only
            secret = None

        secret_hash = (
            await anyio.to_thread.run_sync(hash_secret, secret) if secret else None
        )

        async with self._transaction():
            cursor = await self._execute(
                self._queries.insert_channel,
                (name, description, kind.value, secret_hash),
            )
            channel_id = cursor.lastrowid
            for user_id in sorted(participants):
                try:
                    await self._execute(
                        self._queries.insert_participant, (channel_id, user_id)
                    )
                except aiosqlite.IntegrityError as e:
                    msg = f"User {user_id} not found"
                    raise NotFound(msg) from e

        logger.info("Created %s channel %s (%s)", kind.value, channel_id, name)
        return Channel(
            id=channel_id,
            name=name,
            description=description,
            kind=kind,
            secret_hash=secret_hash,
            participant_ids=participants,
        )

    async def get_channel(self, channel_id: int) -> Channel:
        """Get a channel by id."""
        async with self._locked():
            return await self._get_channel(channel_id)

    async def _get_channel(self, channel_id: int) -> Channel:
        row = await self._fetch_one(self._queries.select_channel, (channel_id,))
        if row is None:
            msg = f"Channel {channel_id} not found"
            raise NotFound(msg)
        participants: frozenset[int] = frozenset()
        if row["kind"] == ChannelKind.PRIVATE.value:
            rows = await self._fetch_all(
                self._queries.select_participants, (channel_id,)
            )
            participants = frozenset(r["user_id"] for r in rows)
        return _channel_from_row(row, participants)

    async def get_channels_visible_to(
        self, user_id: int | None = None
    ) -> list[Channel]:
        """Public channels plus private channels *user_id* participates in.

        Ordered by creation.
        """
        async with self._locked():
            rows = await self._fetch_all(
                self._queries.select_visible_channels, (user_id,)
            )
            participant_rows = await self._fetch_all(
                self._queries.select_visible_participants, (user_id,)
            )

        participants: dict[int, set[int]] = {}
        for r in participant_rows:
            participants.setdefault(r["channel_id"], set()).add(r["user_id"])
        return [
            _channel_from_row(row, frozenset(participants.get(row["id"], ())))
            for row in rows
        ]

    async def verify_secret(self, channel_id: int, supplied: str | None) -> bool:
        """Exact-match check of *supplied* against the channel secret.

        A channel without a secret never matches.
        """
        channel = await self.get_channel(channel_id)
        return await anyio.to_thread.run_sync(
            secret_matches, channel.secret_hash, supplied
        )

    # -- messages -----------------------------------------------------------

    async def append_message(
        self, channel_id: int, author_id: int, content: str
    ) -> ChatMessage:
        """Persist a message and return it with id and timestamp assigned."""
        if not content or not content.strip():
            msg = "Message content must not be empty"
            raise InvalidInput(msg)

        async with self._transaction():
            await self._get_channel(channel_id)
            created_at = await self._next_timestamp(channel_id)
            try:
                cursor = await self._execute(
                    self._queries.insert_message,
                    (channel_id, author_id, content, _format_timestamp(created_at)),
                )
            except aiosqlite.IntegrityError as e:
                msg = f"User {author_id} not found"
                raise NotFound(msg) from e
            row = await self._fetch_one(
                self._queries.select_message, (cursor.lastrowid,)
            )

        self._last_created_at[channel_id] = created_at
        return _message_from_row(row)

    async def _next_timestamp(self, channel_id: int) -> datetime:
        """Current UTC time, never earlier than the channel's last message."""
        now = datetime.now(UTC)
        last = self._last_created_at.get(channel_id)
        if last is None:
            row = await self._fetch_one(
                self._queries.select_last_created_at, (channel_id,)
            )
            if row[0]:
                last = datetime.fromisoformat(row[0])
        if last is not None and last > now:
            return last
        return now

    async def get_history(
        self, channel_id: int, limit: int | None = None
    ) -> list[ChatMessage]:
        """Messages of a channel, oldest first.

        With *limit*, only the most recent *limit* messages are returned.
        Author name and avatar are read at call time.
        """
        async with self._locked():
            await self._get_channel(channel_id)
            rows = await self._fetch_all(
                self._queries.select_history,
                (channel_id, -1 if limit is None else limit),
            )
        return [_message_from_row(row) for row in rows]

    async def close(self) -> None:
        """Close the store. The connection stays open."""
        self._closed = True

    async def __aenter__(self) -> SQLChannelStore:
        """Enter async context."""
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context."""
        await self.close()


def _format_timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _channel_from_row(row: Any, participants: frozenset[int]) -> Channel:
    return Channel(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        kind=ChannelKind(row["kind"]),
        secret_hash=row["secret_hash"],
        participant_ids=participants,
    )


def _message_from_row(row: Any) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        channel_id=row["channel_id"],
        user_id=row["user_id"],
        content=row["content"],
        created_at=datetime.fromisoformat(row["created_at"]),
        username=row["username"],
        avatar_url=row["avatar_url"],
    )
