"""API key authentication.

Keys are random tokens handed to the caller once; only their SHA-256
digest is stored.
"""

import hashlib
import secrets

from src.search.errors import AuthError
from src.store import SearchStore


API_KEY_PREFIX = "ts_"
BEARER_SCHEME = "bearer"


def hash_api_key(key: str) -> str:
    """Hex SHA-256 digest of an API key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    """Create a new random API key."""
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


def issue_api_key(store: SearchStore, caller_id: str, label: str | None = None) -> str:
    """Create and store a key for a caller.

    Returns:
        The plain key. It cannot be recovered later.
    """
    key = generate_api_key()
    store.insert_api_key(hash_api_key(key), caller_id, label)
    return key


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token of a ``Bearer`` authorization header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME or not token.strip():
        return None
    return token.strip()


def authenticate(store: SearchStore, authorization: str | None) -> str:
    """Resolve the caller behind an authorization header.

    Raises:
        AuthError: If the header is missing, malformed or the key is unknown
            or revoked.
    """
    token = bearer_token(authorization)
    if token is None:
        raise AuthError("Missing or invalid authorization header")
    caller_id = store.get_caller_for_key(hash_api_key(token))
    if caller_id is None:
        raise AuthError("Invalid or revoked API key")
    return caller_id
