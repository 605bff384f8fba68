"""Request and response bodies specific to the HTTP layer."""

from datetime import datetime
from typing import Any

from pydantic import Field

from src.data_model import WireModel
from src.store import ChangeEvent, ItemType


class SavedSearchRequest(WireModel):
    """Body of a saved search creation."""

    name: str
    filters: dict[str, Any] = Field(default_factory=dict)
    notification_enabled: bool = False


class EventItem(WireModel):
    """One change event as returned by polling."""

    seq: int
    topic: str
    item_type: ItemType
    item_id: str
    created_at: datetime

    @classmethod
    def from_event(cls, event: ChangeEvent) -> "EventItem":
        return cls(
            seq=event.seq,
            topic=event.topic,
            item_type=event.item_type,
            item_id=event.item_id,
            created_at=event.created_at,
        )
