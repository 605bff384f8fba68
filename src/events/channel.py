"""Change event channel.

Content writes publish ``{topic, item_type, item_id}`` events so that
consumers (score recompute schedulers, caches) can follow changes by
polling with the last sequence number they have seen.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import structlog

from src.store import ChangeEvent, ItemType, SearchStore


logger = structlog.get_logger()

DEFAULT_POLL_LIMIT = 100


@dataclass(frozen=True)
class ContentEvent:
    """An event to publish.

    Attributes:
        topic: Event topic such as ``repo.created``.
        item_type: Type of the changed item.
        item_id: Identifier of the changed item.
    """

    topic: str
    item_type: ItemType
    item_id: str


@runtime_checkable
class EventChannel(Protocol):
    """Protocol for ordered, pollable change channels."""

    def publish(self, event: ContentEvent) -> int:
        """Publish an event.

        Returns:
            The sequence number assigned to the event.
        """
        ...

    def poll(self, since: int = 0, limit: int = DEFAULT_POLL_LIMIT) -> list[ChangeEvent]:
        """Events after sequence ``since``, oldest first."""
        ...


class StoreEventChannel:
    """Event channel persisted in the store's ``change_events`` table.

    Sequence numbers increase monotonically and are never reused.
    """

    def __init__(self, store: SearchStore) -> None:
        self._store = store
        self._log = logger.bind(component="events", subcomponent="channel")

    def publish(self, event: ContentEvent) -> int:
        seq = self._store.append_event(event.topic, event.item_type, event.item_id)
        self._log.debug(
            "event_published",
            seq=seq,
            topic=event.topic,
            item_type=event.item_type.value,
            item_id=event.item_id,
        )
        return seq

    def poll(self, since: int = 0, limit: int = DEFAULT_POLL_LIMIT) -> list[ChangeEvent]:
        if since < 0:
            since = 0
        return self._store.events_since(since, limit)
