"""Durable channel and message storage."""

from parley.store.base import ChannelStore
from parley.store.config import StoreConfig
from parley.store.dialect import ChatQueries, Dialect, SQLiteDialect
from parley.store.sql import SQLChannelStore

__all__ = [
    "ChannelStore",
    "ChatQueries",
    "Dialect",
    "SQLChannelStore",
    "SQLiteDialect",
    "StoreConfig",
]
