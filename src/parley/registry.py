"""In-memory index of which sessions are in which channel."""

import threading


class MembershipRegistry:
    """Maps channel id to the sessions currently in it.

    A session is in at most one channel. Every operation takes the same
    lock and none of them awaits, so the registry can be shared by any
    number of concurrent sessions. Nothing is persisted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._members: dict[int, set[str]] = {}
        self._channel_of: dict[str, int] = {}

    def join(self, session_id: str, channel_id: int) -> int | None:
        """Move *session_id* into *channel_id*.

        Returns the channel the session left, if it was in another one.
        """
        with self._lock:
            previous = self._channel_of.get(session_id)
            if previous == channel_id:
                return None
            if previous is not None:
                self._discard(session_id, previous)
            self._members.setdefault(channel_id, set()).add(session_id)
            self._channel_of[session_id] = channel_id
            return previous

    def leave(self, session_id: str, channel_id: int) -> bool:
        """Remove *session_id* from *channel_id*. No-op if absent."""
        with self._lock:
            if self._channel_of.get(session_id) != channel_id:
                return False
            self._discard(session_id, channel_id)
            return True

    def leave_all(self, session_id: str) -> int | None:
        """Remove *session_id* from every channel. Returns the channel left."""
        with self._lock:
            channel_id = self._channel_of.get(session_id)
            if channel_id is not None:
                self._discard(session_id, channel_id)
            return channel_id

    def members_of(self, channel_id: int) -> frozenset[str]:
        """Snapshot of the sessions in *channel_id*."""
        with self._lock:
            return frozenset(self._members.get(channel_id, ()))

    def channel_of(self, session_id: str) -> int | None:
        """The channel *session_id* is in, if any."""
        with self._lock:
            return self._channel_of.get(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._channel_of)

    def _discard(self, session_id: str, channel_id: int) -> None:
        # Caller holds the lock
        members = self._members.get(channel_id)
        if members is not None:
            members.discard(session_id)
            if not members:
                del self._members[channel_id]
        self._channel_of.pop(session_id, None)
