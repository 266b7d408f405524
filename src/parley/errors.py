"""Error taxonomy shared by the store, directory and gateway."""


class ChatError(Exception):
    """Base class for errors with a machine-readable code."""

    code = "error"


class NotFound(ChatError):
    """Referenced channel or user does not exist."""

    code = "not_found"


class InvalidInput(ChatError):
    """Request is malformed (empty content, empty name, bad frame)."""

    code = "invalid_input"


class AccessDenied(ChatError):
    """Secret mismatch, or not a participant of a private channel."""

    code = "access_denied"


class Conflict(ChatError):
    """A unique field is already taken."""

    code = "conflict"


class StoreUnavailable(ChatError):
    """The underlying persistence could not be reached."""

    code = "store_unavailable"
