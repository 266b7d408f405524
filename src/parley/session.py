"""Per-connection session state."""

import logging
from collections.abc import AsyncIterator
from enum import StrEnum
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from parley.events import OutboundEvent
from parley.models import User

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 256


class SessionState(StrEnum):
    """Lifecycle of a session: connected, then in a channel, then gone."""

    CONNECTED = "connected"
    IN_CHANNEL = "in_channel"
    DISCONNECTED = "disconnected"


class Session:
    """One connected client.

    Outbound events are queued on a bounded outbox that the transport
    drains through ``events()``. Delivery never blocks: a full or closed
    outbox makes ``deliver`` return False.
    """

    def __init__(self, user: User, buffer_size: int = DEFAULT_OUTBOX_SIZE) -> None:
        self.id = str(uuid4())
        self.user = user
        self.state = SessionState.CONNECTED
        self.channel_id: int | None = None
        self._send: MemoryObjectSendStream[OutboundEvent]
        self._receive: MemoryObjectReceiveStream[OutboundEvent]
        self._send, self._receive = anyio.create_memory_object_stream(buffer_size)

    @property
    def connected(self) -> bool:
        return self.state is not SessionState.DISCONNECTED

    def enter(self, channel_id: int) -> None:
        self.state = SessionState.IN_CHANNEL
        self.channel_id = channel_id

    def exit(self) -> None:
        if self.connected:
            self.state = SessionState.CONNECTED
        self.channel_id = None

    def deliver(self, event: OutboundEvent) -> bool:
        """Queue *event* for the client. Returns False if it could not be queued."""
        try:
            self._send.send_nowait(event)
        except anyio.WouldBlock:
            logger.warning("Outbox full for session %s", self.id)
            return False
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            return False
        return True

    async def events(self) -> AsyncIterator[OutboundEvent]:
        """Yield queued events until the session is closed."""
        async with self._receive:
            async for event in self._receive:
                yield event

    def close(self) -> None:
        """Mark the session disconnected and close its outbox.

        Events already queued can still be drained by ``events()``.
        """
        self.state = SessionState.DISCONNECTED
        self.channel_id = None
        self._send.close()

    def __repr__(self) -> str:
        return (
            f"Session(id={self.id!r}, user={self.user.username!r}, "
            f"state={self.state.value}, channel_id={self.channel_id})"
        )
