"""Session wire events - what clients send and what they receive."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from parley.errors import InvalidInput
from parley.models import ChannelView, ChatMessage


# Inbound
class JoinChannel(BaseModel):
    """Join (or switch to) a channel."""

    event: Literal["join_channel"] = "join_channel"
    channel_id: int
    secret: str | None = None


class SendMessage(BaseModel):
    """Send a message to the channel the session is in.

    The identity fields are accepted for compatibility with older clients
    and ignored: the author is always the session's user.
    """

    event: Literal["send_message"] = "send_message"
    channel_id: int | None = None
    content: str
    user_id: int | None = None
    username: str | None = None
    avatar_url: str | None = None


class LeaveChannel(BaseModel):
    """Leave the current channel without disconnecting."""

    event: Literal["leave_channel"] = "leave_channel"


InboundEvent = Annotated[
    JoinChannel | SendMessage | LeaveChannel, Field(discriminator="event")
]

_inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def parse_inbound(data: Any) -> JoinChannel | SendMessage | LeaveChannel:
    """Validate a client frame, raw JSON text or already decoded."""
    try:
        if isinstance(data, str | bytes):
            return _inbound_adapter.validate_json(data)
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        msg = f"Malformed event: {e.errors(include_url=False)}"
        raise InvalidInput(msg) from e


# Outbound
class ReceiveMessage(BaseModel):
    """A persisted message broadcast to every member of its channel."""

    event: Literal["receive_message"] = "receive_message"
    message: ChatMessage


class ChannelJoined(BaseModel):
    """Join accepted. Carries the channel's history up to the join."""

    event: Literal["channel_joined"] = "channel_joined"
    channel: ChannelView
    history: list[ChatMessage] = Field(default_factory=list)


class ChannelLeft(BaseModel):
    """The session is no longer in *channel_id*."""

    event: Literal["channel_left"] = "channel_left"
    channel_id: int


class Rejected(BaseModel):
    """A request was refused. Sent only to the requesting session."""

    event: Literal["rejected"] = "rejected"
    request: str
    code: str
    reason: str
    channel_id: int | None = None


OutboundEvent = ReceiveMessage | ChannelJoined | ChannelLeft | Rejected
