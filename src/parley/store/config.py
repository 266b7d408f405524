"""Configuration dataclass for the channel store."""

from dataclasses import dataclass


@dataclass
class StoreConfig:
    """Configuration for the SQL channel store."""

    database: str = "parley.db"
    """SQLite database path. ``:memory:`` keeps everything in process."""

    table_prefix: str = ""
    """Prefix for table names. Prefix 'chat_' turns 'channels' into 'chat_channels'."""

    auto_create_tables: bool = True
    """Automatically create tables if they don't exist."""

    seed_default_channels: bool = True
    """Create the 'general' and 'random' channels when no channel exists yet."""
