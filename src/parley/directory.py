"""Channel directory: discovery and creation for the HTTP layer."""

import logging

from parley.errors import InvalidInput
from parley.models import ChannelCreate, ChannelKind, ChannelView, ChatMessage
from parley.store import ChannelStore

logger = logging.getLogger(__name__)


class ChannelDirectory:
    """Thin read/create facade over the channel store."""

    def __init__(self, store: ChannelStore) -> None:
        self._store = store

    async def list_channels(self, user_id: int | None = None) -> list[ChannelView]:
        """Channels visible to *user_id*, or only public ones without it."""
        channels = await self._store.get_channels_visible_to(user_id)
        return [channel.view() for channel in channels]

    async def create_channel(self, request: ChannelCreate) -> ChannelView:
        """Create a channel.

        Raises:
            InvalidInput: Empty name, or a private channel without participants.
            NotFound: A participant id does not reference a user.
        """
        if not request.name.strip():
            msg = "Channel name must not be empty"
            raise InvalidInput(msg)
        if request.kind is ChannelKind.PRIVATE and not request.participant_ids:
            msg = "Private channel needs at least one participant"
            raise InvalidInput(msg)

        channel = await self._store.create_channel(
            request.name,
            request.kind,
            description=request.description,
            secret=request.secret,
            participant_ids=request.participant_ids,
        )
        return channel.view()

    async def verify_channel_secret(self, channel_id: int, secret: str | None) -> bool:
        """Check a password before joining a protected channel.

        Raises:
            NotFound: Unknown channel.
            InvalidInput: The channel has no password to check against.
        """
        channel = await self._store.get_channel(channel_id)
        if not channel.has_secret:
            msg = f"Channel {channel_id} is not password protected"
            raise InvalidInput(msg)
        valid = await self._store.verify_secret(channel_id, secret)
        if not valid:
            logger.info("Incorrect password for channel %s", channel_id)
        return valid

    async def get_history(
        self, channel_id: int, limit: int | None = None
    ) -> list[ChatMessage]:
        """Persisted messages of a channel, oldest first."""
        return await self._store.get_history(channel_id, limit)
