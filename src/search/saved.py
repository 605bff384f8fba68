"""Saved searches owned by identified callers."""

from datetime import datetime

import structlog

from src.search.errors import AuthError, ValidationError
from src.search.history import search_type_for
from src.search.models import SavedSearchItem, SearchFilters
from src.store import SavedSearch, SearchStore
from src.store.models import utc_now


logger = structlog.get_logger()

MAX_NAME_LENGTH = 100


def _to_item(saved: SavedSearch) -> SavedSearchItem:
    return SavedSearchItem(
        id=saved.id,
        name=saved.name,
        query=saved.search_query,
        filters=saved.filters,
        search_type=saved.search_type.value,
        notification_enabled=saved.notification_enabled,
        created_at=saved.created_at,
    )


class SavedSearchService:
    """Create, list and delete a caller's saved searches."""

    def __init__(self, store: SearchStore) -> None:
        self._store = store
        self._log = logger.bind(component="search", subcomponent="saved")

    @staticmethod
    def _require_caller(caller_id: str | None) -> str:
        if not caller_id:
            raise AuthError("Saved searches require an identified caller")
        return caller_id

    def save(
        self,
        caller_id: str | None,
        name: str,
        filters: SearchFilters,
        notification_enabled: bool = False,
        now: datetime | None = None,
    ) -> SavedSearchItem:
        """Save a named search.

        Raises:
            AuthError: If the caller is anonymous.
            ValidationError: If the name is blank or too long.
        """
        owner = self._require_caller(caller_id)
        name = name.strip()
        if not name or len(name) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"name must be 1-{MAX_NAME_LENGTH} characters", field="name"
            )

        payload = filters.to_wire()
        payload.pop("query", None)
        saved = self._store.insert_saved_search(
            owner,
            name,
            filters.query_text,
            payload,
            search_type_for(filters).value,
            notification_enabled,
            now or utc_now(),
        )
        self._log.info("saved_search_created", caller_id=owner, saved_id=saved.id)
        return _to_item(saved)

    def list_searches(self, caller_id: str | None) -> list[SavedSearchItem]:
        """Active saved searches of a caller, newest first."""
        owner = self._require_caller(caller_id)
        return [_to_item(s) for s in self._store.list_saved_searches(owner)]

    def delete(
        self, caller_id: str | None, search_id: int, now: datetime | None = None
    ) -> bool:
        """Delete one of the caller's saved searches.

        Returns:
            False if the caller has no active search with that id.
        """
        owner = self._require_caller(caller_id)
        deleted = self._store.deactivate_saved_search(owner, search_id, now or utc_now())
        if deleted:
            self._log.info("saved_search_deleted", caller_id=owner, saved_id=search_id)
        return deleted
