"""HTTP API over the search engine."""

from src.api.app import create_app
from src.api.auth import authenticate, hash_api_key, issue_api_key


__all__ = [
    "authenticate",
    "create_app",
    "hash_api_key",
    "issue_api_key",
]
