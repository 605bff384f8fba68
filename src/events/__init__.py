"""Change event publication and polling."""

from src.events.channel import (
    DEFAULT_POLL_LIMIT,
    ContentEvent,
    EventChannel,
    StoreEventChannel,
)


__all__ = [
    "DEFAULT_POLL_LIMIT",
    "ContentEvent",
    "EventChannel",
    "StoreEventChannel",
]
