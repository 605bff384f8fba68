"""Domain exceptions for the search store.

Infrastructure errors (database issues) are kept separate from the
engine's own error taxonomy so callers can map them to a generic failure
without leaking details.
"""


class StateStoreError(Exception):
    """Base exception for all store errors."""


class ConnectionError(StateStoreError):
    """Raised when the database connection is not established."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class StoreUnavailableError(StateStoreError):
    """Raised when the store cannot serve a request at all.

    The message is safe to show to callers; the underlying cause is kept
    on ``__cause__`` for logs only.
    """

    def __init__(self, message: str = "Storage is temporarily unavailable") -> None:
        """Initialize the error.

        Args:
            message: Caller-safe message.
        """
        super().__init__(message)


class QueryCompileError(StateStoreError):
    """Raised when a query description cannot be compiled."""


class MigrationError(StateStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")
