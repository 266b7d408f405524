"""Salted bcrypt hashing for channel secrets.

Both functions are CPU bound; async callers run them in a worker thread.
"""

import bcrypt

from parley.errors import InvalidInput

DEFAULT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes of its input
MAX_SECRET_BYTES = 72


def hash_secret(secret: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a channel secret for storage."""
    encoded = secret.encode()
    if len(encoded) > MAX_SECRET_BYTES:
        msg = f"Channel password must be at most {MAX_SECRET_BYTES} bytes"
        raise InvalidInput(msg)
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode()


def secret_matches(stored_hash: str | None, supplied: str | None) -> bool:
    """Return True iff *supplied* is exactly the secret behind *stored_hash*.

    An empty stored hash never matches, not even an empty supplied value.
    """
    if not stored_hash or supplied is None:
        return False
    encoded = supplied.encode()
    if len(encoded) > MAX_SECRET_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, stored_hash.encode())
    except ValueError:
        return False
