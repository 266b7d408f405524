"""Message gateway - drives sessions through join, send and disconnect.

Every outcome is reported to the session as an event; errors from access
control and the store are turned into ``Rejected`` events for the
requesting session and never escape the gateway.

For one channel, persist and broadcast happen under that channel's lock,
so every member observes messages in the order they were persisted.
Channels do not wait on each other.
"""

import logging
import time

import anyio
import anyio.to_thread

from parley.access import can_join
from parley.errors import AccessDenied, ChatError, InvalidInput
from parley.events import (
    ChannelJoined,
    ChannelLeft,
    JoinChannel,
    LeaveChannel,
    OutboundEvent,
    ReceiveMessage,
    Rejected,
    SendMessage,
)
from parley.metrics import GatewayMetrics
from parley.models import ChatMessage, User
from parley.registry import MembershipRegistry
from parley.session import DEFAULT_OUTBOX_SIZE, Session, SessionState
from parley.store import ChannelStore

logger = logging.getLogger(__name__)


class MessageGateway:
    """Connects sessions to channels and fans messages out to members."""

    def __init__(
        self,
        store: ChannelStore,
        registry: MembershipRegistry,
        metrics: GatewayMetrics | None = None,
        *,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
        history_limit: int | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            store: Channel store used for access checks, history and persistence.
            registry: Membership registry shared by all sessions.
            metrics: Instruments to record into. Defaults to the global provider.
            outbox_size: Events a session may have queued before it is evicted.
            history_limit: Most recent messages replayed on join (None for all).
        """
        self._store = store
        self._registry = registry
        self._metrics = metrics or GatewayMetrics()
        self._outbox_size = outbox_size
        self._history_limit = history_limit
        self._sessions: dict[str, Session] = {}
        self._channel_locks: dict[int, anyio.Lock] = {}

    @property
    def registry(self) -> MembershipRegistry:
        return self._registry

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def connect(self, user: User, buffer_size: int | None = None) -> Session:
        """Open a session for an authenticated user."""
        session = Session(user, buffer_size or self._outbox_size)
        self._sessions[session.id] = session
        self._metrics.session_opened()
        logger.info("User %s connected as session %s", user.username, session.id)
        return session

    async def handle(
        self, session: Session, event: JoinChannel | SendMessage | LeaveChannel
    ) -> OutboundEvent | ChatMessage:
        """Dispatch a parsed inbound event."""
        if isinstance(event, JoinChannel):
            return await self.join(session, event.channel_id, event.secret)
        if isinstance(event, SendMessage):
            return await self.send(session, event.content, event.channel_id)
        return await self.leave(session)

    async def join(
        self, session: Session, channel_id: int, secret: str | None = None
    ) -> ChannelJoined | Rejected:
        """Move *session* into *channel_id* if access control allows it.

        On success the session leaves its previous channel and receives
        ``ChannelJoined`` with the history. On failure nothing changes.
        """
        request = "join_channel"
        if not session.connected:
            return self.reject(
                session, request, InvalidInput("Session is disconnected"), channel_id
            )

        try:
            channel = await self._store.get_channel(channel_id)
        except ChatError as e:
            return self.reject(session, request, e, channel_id)

        decision = await anyio.to_thread.run_sync(
            can_join, session.user, channel, secret
        )
        if not decision.allowed:
            logger.warning(
                "User %s denied channel %s: %s",
                session.user.username,
                channel_id,
                decision.reason,
            )
            return self.reject(
                session, request, AccessDenied(decision.reason), channel_id
            )

        # No message can be broadcast to this channel between the history
        # read and the registration, so replay and live stream line up.
        async with self._lock_for(channel_id):
            try:
                history = await self._store.get_history(
                    channel_id, self._history_limit
                )
            except ChatError as e:
                return self.reject(session, request, e, channel_id)

            if not session.connected:
                return self.reject(
                    session,
                    request,
                    InvalidInput("Session is disconnected"),
                    channel_id,
                )

            previous = self._registry.join(session.id, channel_id)
            session.enter(channel_id)
            joined = ChannelJoined(channel=channel.view(), history=history)
            self._deliver(session, joined)

        if previous is not None:
            logger.info(
                "Session %s switched from channel %s to %s",
                session.id,
                previous,
                channel_id,
            )
        else:
            logger.info("Session %s joined channel %s", session.id, channel_id)
        return joined

    async def switch_channel(
        self, session: Session, channel_id: int, secret: str | None = None
    ) -> ChannelJoined | Rejected:
        """Join another channel; the previous one is left on success."""
        return await self.join(session, channel_id, secret)

    async def leave(self, session: Session) -> ChannelLeft | Rejected:
        """Take *session* out of its channel, keeping it connected."""
        channel_id = self._registry.leave_all(session.id)
        if channel_id is None:
            return self.reject(
                session, "leave_channel", InvalidInput("Not in a channel")
            )
        session.exit()
        left = ChannelLeft(channel_id=channel_id)
        self._deliver(session, left)
        logger.info("Session %s left channel %s", session.id, channel_id)
        return left

    async def send(
        self, session: Session, content: str, channel_id: int | None = None
    ) -> ChatMessage | Rejected:
        """Persist *content* in the session's channel, then broadcast it.

        The sender gets the message through the broadcast like every other
        member. If persisting fails only the sender hears about it. Once the
        store is called the send runs to completion even if the caller is
        cancelled.
        """
        request = "send_message"
        current = session.channel_id
        if session.state is not SessionState.IN_CHANNEL or current is None:
            return self.reject(
                session,
                request,
                InvalidInput("Join a channel before sending"),
                channel_id,
            )
        if channel_id is not None and channel_id != current:
            return self.reject(
                session,
                request,
                AccessDenied(f"Not a member of channel {channel_id}"),
                channel_id,
            )

        with anyio.CancelScope(shield=True):
            start = time.perf_counter()
            async with self._lock_for(current):
                try:
                    message = await self._store.append_message(
                        current, session.user.id, content
                    )
                except ChatError as e:
                    logger.warning(
                        "Message from session %s to channel %s not persisted: %s",
                        session.id,
                        current,
                        e,
                    )
                    return self.reject(session, request, e, current)

                self._metrics.message_persisted(current)
                delivered, failed = self._broadcast(
                    current, ReceiveMessage(message=message)
                )
            self._metrics.broadcast_finished(
                current, delivered, failed, time.perf_counter() - start
            )
        return message

    def disconnect(self, session: Session) -> None:
        """Remove *session* from its channel and close it. Idempotent."""
        known = self._sessions.pop(session.id, None) is not None
        channel_id = self._registry.leave_all(session.id)
        session.close()
        if known:
            self._metrics.session_closed()
            logger.info(
                "Session %s disconnected (channel %s)", session.id, channel_id
            )

    def _broadcast(self, channel_id: int, event: ReceiveMessage) -> tuple[int, int]:
        """Queue *event* for every member. Returns (delivered, failed)."""
        delivered = failed = 0
        for session_id in self._registry.members_of(channel_id):
            session = self._sessions.get(session_id)
            try:
                ok = session is not None and session.deliver(event)
            except Exception:
                logger.exception("Delivery to session %s failed", session_id)
                ok = False
            if ok:
                delivered += 1
                continue
            failed += 1
            self._evict(session_id)
        return delivered, failed

    def _deliver(self, session: Session, event: OutboundEvent) -> None:
        if not session.deliver(event) and session.connected:
            self._evict(session.id)

    def _evict(self, session_id: str) -> None:
        """Drop a session that can no longer keep up. Its transport sees EOF."""
        self._registry.leave_all(session_id)
        session = self._sessions.get(session_id)
        if session is not None and session.connected:
            logger.warning("Evicting session %s: outbox unavailable", session_id)
            session.close()

    def reject(
        self,
        session: Session,
        request: str,
        error: ChatError,
        channel_id: int | None = None,
    ) -> Rejected:
        """Tell *session*, and only it, that *request* was refused."""
        rejected = Rejected(
            request=request,
            code=error.code,
            reason=str(error),
            channel_id=channel_id,
        )
        self._metrics.rejected(request, error.code)
        self._deliver(session, rejected)
        return rejected

    def _lock_for(self, channel_id: int) -> anyio.Lock:
        lock = self._channel_locks.get(channel_id)
        if lock is None:
            lock = self._channel_locks[channel_id] = anyio.Lock()
        return lock
