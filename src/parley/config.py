"""Server configuration."""

import os
from dataclasses import dataclass, field

from parley.session import DEFAULT_OUTBOX_SIZE
from parley.store.config import StoreConfig

DEFAULT_PORT = 3001


@dataclass
class ServerConfig:
    """Configuration for the chat server."""

    host: str = "127.0.0.1"
    """Interface to bind."""

    port: int = DEFAULT_PORT
    """TCP port to listen on."""

    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    """Origins allowed to call the HTTP API."""

    outbox_size: int = DEFAULT_OUTBOX_SIZE
    """Events a session may have queued before it is evicted as too slow."""

    history_limit: int | None = None
    """Most recent messages replayed on join. None replays everything."""

    store: StoreConfig = field(default_factory=StoreConfig)
    """Channel store configuration."""

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ServerConfig":
        """Build a configuration from environment variables.

        Reads HOST, PORT, CORS_ORIGIN (comma separated), PARLEY_DATABASE,
        PARLEY_OUTBOX_SIZE and PARLEY_HISTORY_LIMIT.
        """
        env = os.environ if environ is None else environ
        config = cls()
        if "HOST" in env:
            config.host = env["HOST"]
        if "PORT" in env:
            config.port = int(env["PORT"])
        if "CORS_ORIGIN" in env:
            config.cors_origins = [
                origin.strip()
                for origin in env["CORS_ORIGIN"].split(",")
                if origin.strip()
            ]
        if "PARLEY_DATABASE" in env:
            config.store.database = env["PARLEY_DATABASE"]
        if "PARLEY_OUTBOX_SIZE" in env:
            config.outbox_size = int(env["PARLEY_OUTBOX_SIZE"])
        if "PARLEY_HISTORY_LIMIT" in env:
            config.history_limit = int(env["PARLEY_HISTORY_LIMIT"])
        return config
