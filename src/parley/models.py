"""Chat domain models - users, channels and messages."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ChannelKind(StrEnum):
    """Visibility of a channel.

    Password protection is not a kind of its own: a public channel with a
    secret set is password protected.
    """

    PUBLIC = "public"
    PRIVATE = "private"


class User(BaseModel):
    """Authenticated identity, owned by the auth layer."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    avatar_url: str | None = None


class Channel(BaseModel):
    """Stored channel record, including access-control state."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str | None = None
    kind: ChannelKind = ChannelKind.PUBLIC
    secret_hash: str | None = None
    participant_ids: frozenset[int] = frozenset()

    @property
    def has_secret(self) -> bool:
        return bool(self.secret_hash)

    @property
    def is_private(self) -> bool:
        return self.kind is ChannelKind.PRIVATE

    def view(self) -> "ChannelView":
        """Project to the shape exposed outside the core."""
        return ChannelView(
            id=self.id,
            name=self.name,
            description=self.description,
            kind=self.kind,
            has_secret=self.has_secret,
            participant_ids=sorted(self.participant_ids) if self.is_private else [],
        )


class ChannelView(BaseModel):
    """Channel as listed to clients. Never carries the secret."""

    id: int
    name: str
    description: str | None = None
    kind: ChannelKind
    has_secret: bool
    participant_ids: list[int] = Field(default_factory=list)


class ChannelCreate(BaseModel):
    """Request to create a channel."""

    name: str
    kind: ChannelKind = ChannelKind.PUBLIC
    description: str | None = None
    secret: str | None = None
    participant_ids: list[int] = Field(default_factory=list)


class ChatMessage(BaseModel):
    """Persisted message, enriched with the author's current profile."""

    model_config = ConfigDict(frozen=True)

    id: int
    channel_id: int
    user_id: int
    content: str
    created_at: datetime
    username: str
    avatar_url: str | None = None
