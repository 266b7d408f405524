"""Channel access control: who may join which channel."""

from dataclasses import dataclass

from parley.hashing import secret_matches
from parley.models import Channel, User


@dataclass(frozen=True)
class Decision:
    """Outcome of an access check."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason)


def can_join(user: User, channel: Channel, supplied_secret: str | None) -> Decision:
    """Decide whether *user* may join *channel*.

    Private channels admit their participants only and never consult the
    secret. Channels with a secret require an exact match; a missing secret
    is a mismatch. Anything else is open.
    """
    if channel.is_private:
        if user.id in channel.participant_ids:
            return Decision.allow()
        return Decision.deny("not a participant of this channel")

    if channel.has_secret:
        if secret_matches(channel.secret_hash, supplied_secret):
            return Decision.allow()
        return Decision.deny("incorrect channel password")

    return Decision.allow()
