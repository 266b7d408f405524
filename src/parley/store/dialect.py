"""SQL dialect abstraction for the chat schema."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ChatQueries:
    """Pre-generated SQL queries for one set of chat tables."""

    enable_foreign_keys: str
    create_schema: tuple[str, ...]
    insert_user: str
    select_user: str
    update_avatar: str
    count_channels: str
    insert_channel: str
    insert_participant: str
    select_channel: str
    select_participants: str
    select_visible_channels: str
    select_visible_participants: str
    insert_message: str
    select_message: str
    select_history: str
    select_last_created_at: str


class Dialect(Protocol):
    """Protocol for SQL dialect differences."""

    def queries(self, table_prefix: str = "") -> ChatQueries:
        """Generate all queries for tables under *table_prefix*."""
        ...


class SQLiteDialect:
    """SQLite dialect using aiosqlite.

    Timestamps are stored as ISO-8601 text with microseconds so that text
    order is time order.
    """

    def _quote(self, name: str) -> str:
        """Quote identifier for SQLite."""
        # Double any existing double quotes and wrap in double quotes
        return '"' + name.replace('"', '""') + '"'

    def queries(self, table_prefix: str = "") -> ChatQueries:
        """Generate SQLite queries for the chat tables."""
        users = self._quote(f"{table_prefix}users")
        channels = self._quote(f"{table_prefix}channels")
        participants = self._quote(f"{table_prefix}channel_participants")
        messages = self._quote(f"{table_prefix}messages")
        history_idx = self._quote(f"idx_{table_prefix}messages_history")

        message_columns = f"""
            m.id, m.channel_id, m.user_id, m.content, m.created_at,
            u.username, u.avatar_url
            FROM {messages} m
            JOIN {users} u ON u.id = m.user_id
        """
        return ChatQueries(
            enable_foreign_keys="PRAGMA foreign_keys = ON",
            create_schema=(
                f"""
                CREATE TABLE IF NOT EXISTS {users} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    avatar_url TEXT,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """,
                f"""
                CREATE TABLE IF NOT EXISTS {channels} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    kind TEXT NOT NULL DEFAULT 'public'
                        CHECK (kind IN ('public', 'private')),
                    secret_hash TEXT,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """,
                f"""
                CREATE TABLE IF NOT EXISTS {participants} (
                    channel_id INTEGER NOT NULL REFERENCES {channels} (id),
                    user_id INTEGER NOT NULL REFERENCES {users} (id),
                    PRIMARY KEY (channel_id, user_id)
                )
                """,
                f"""
                CREATE TABLE IF NOT EXISTS {messages} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel_id INTEGER NOT NULL REFERENCES {channels} (id),
                    user_id INTEGER NOT NULL REFERENCES {users} (id),
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """,
                f"""
                CREATE INDEX IF NOT EXISTS {history_idx}
                ON {messages} (channel_id, created_at, id)
                """,
            ),
            insert_user=f"""
                INSERT INTO {users} (username, avatar_url) VALUES (?, ?)
            """,
            select_user=f"""
                SELECT id, username, avatar_url FROM {users} WHERE id = ?
            """,
            update_avatar=f"""
                UPDATE {users} SET avatar_url = ? WHERE id = ?
            """,
            count_channels=f"SELECT count(*) FROM {channels}",
            insert_channel=f"""
                INSERT INTO {channels} (name, description, kind, secret_hash)
                VALUES (?, ?, ?, ?)
            """,
            insert_participant=f"""
                INSERT INTO {participants} (channel_id, user_id)
                VALUES (?, ?)
            """,
            select_channel=f"""
                SELECT id, name, description, kind, secret_hash
                FROM {channels}
                WHERE id = ?
            """,
            select_participants=f"""
                SELECT user_id FROM {participants} WHERE channel_id = ?
            """,
            # user_id = NULL never matches, so an anonymous caller sees
            # public channels only
            select_visible_channels=f"""
                SELECT c.id, c.name, c.description, c.kind, c.secret_hash
                FROM {channels} c
                WHERE c.kind != 'private'
                   OR EXISTS (
                        SELECT 1 FROM {participants} p
                        WHERE p.channel_id = c.id AND p.user_id = ?
                   )
                ORDER BY c.id
            """,
            select_visible_participants=f"""
                SELECT channel_id, user_id
                FROM {participants}
                WHERE channel_id IN (
                    SELECT channel_id FROM {participants} WHERE user_id = ?
                )
            """,
            insert_message=f"""
                INSERT INTO {messages} (channel_id, user_id, content, created_at)
                VALUES (?, ?, ?, ?)
            """,
            select_message=f"SELECT {message_columns} WHERE m.id = ?",
            # LIMIT -1 means no limit in SQLite
            select_history=f"""
                SELECT * FROM (
                    SELECT {message_columns}
                    WHERE m.channel_id = ?
                    ORDER BY m.created_at DESC, m.id DESC
                    LIMIT ?
                )
                ORDER BY created_at, id
            """,
            select_last_created_at=f"""
                SELECT max(created_at) FROM {messages} WHERE channel_id = ?
            """,
        )
