"""parley: real-time group chat with channel rooms and persisted fan-out.

Re-exports the core components. The HTTP/WebSocket app lives in
``parley.server``.
"""

from parley.access import Decision, can_join
from parley.config import ServerConfig
from parley.directory import ChannelDirectory
from parley.errors import (
    AccessDenied,
    ChatError,
    Conflict,
    InvalidInput,
    NotFound,
    StoreUnavailable,
)
from parley.gateway import MessageGateway
from parley.metrics import GatewayMetrics
from parley.models import (
    Channel,
    ChannelCreate,
    ChannelKind,
    ChannelView,
    ChatMessage,
    User,
)
from parley.registry import MembershipRegistry
from parley.session import Session, SessionState
from parley.store import ChannelStore, SQLChannelStore, StoreConfig

__all__ = [
    # models
    "Channel",
    "ChannelCreate",
    "ChannelKind",
    "ChannelView",
    "ChatMessage",
    "User",
    # errors
    "AccessDenied",
    "ChatError",
    "Conflict",
    "InvalidInput",
    "NotFound",
    "StoreUnavailable",
    # core
    "ChannelDirectory",
    "ChannelStore",
    "Decision",
    "GatewayMetrics",
    "MembershipRegistry",
    "MessageGateway",
    "SQLChannelStore",
    "ServerConfig",
    "Session",
    "SessionState",
    "StoreConfig",
    "can_join",
]
