"""Channel store protocol."""

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from parley.models import Channel, ChannelKind, ChatMessage, User


@runtime_checkable
class ChannelStore(Protocol):
    """Durable record of channels, their participants and message history.

    Implementations raise the errors in ``parley.errors``: ``NotFound`` for
    unknown references, ``InvalidInput`` for rejected values and
    ``StoreUnavailable`` when persistence cannot be reached.
    """

    async def create_channel(
        self,
        name: str,
        kind: ChannelKind,
        description: str | None = None,
        secret: str | None = None,
        participant_ids: Iterable[int] | None = None,
    ) -> Channel:
        """Create a channel, atomically with its participant set."""
        ...

    async def get_channel(self, channel_id: int) -> Channel:
        """Get a channel by id."""
        ...

    async def get_channels_visible_to(
        self, user_id: int | None = None
    ) -> list[Channel]:
        """Public channels plus private channels *user_id* participates in."""
        ...

    async def append_message(
        self, channel_id: int, author_id: int, content: str
    ) -> ChatMessage:
        """Persist a message and return it with id and timestamp assigned."""
        ...

    async def get_history(
        self, channel_id: int, limit: int | None = None
    ) -> list[ChatMessage]:
        """Messages of a channel, oldest first."""
        ...

    async def verify_secret(self, channel_id: int, supplied: str | None) -> bool:
        """Exact-match check of *supplied* against the channel secret."""
        ...

    async def get_user(self, user_id: int) -> User:
        """Get a user by id."""
        ...
