"""
Knowledge Store

Persistence interface for knowledge units, plus an in-memory implementation.
Stored in-memory only - units do not persist across server restarts.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from bulk_import.errors import UnitNotFoundError
from bulk_import.models.sources import HistoryEntry, KnowledgeUnit, SourceUrl
from bulk_import.utils.helpers import normalize_url

logger = logging.getLogger(__name__)


def _history_summary(verb: str, source_count: int) -> str:
    noun = "source" if source_count == 1 else "sources"
    return f"{verb} from bulk import with {source_count} {noun}"


class KnowledgeStore(ABC):
    """Create and update knowledge units."""

    @abstractmethod
    async def create_unit(
        self,
        title: str,
        content: str,
        urls: List[str],
        document_ids: Optional[List[str]] = None,
    ) -> str:
        """
        Create a unit.

        Returns:
            The new unit id
        """

    @abstractmethod
    async def update_unit(
        self,
        unit_id: str,
        title: str,
        content: str,
        urls: List[str],
        document_ids: Optional[List[str]] = None,
    ) -> str:
        """
        Update an existing unit, merging its source URLs.

        Raises:
            UnitNotFoundError: If the unit does not exist
        """

    @abstractmethod
    async def get_unit(self, unit_id: str) -> Optional[KnowledgeUnit]:
        ...

    @abstractmethod
    async def list_units(self) -> List[KnowledgeUnit]:
        ...


class InMemoryKnowledgeStore(KnowledgeStore):
    """
    Dict-backed store keyed by unit id.
    """

    def __init__(self, units: Optional[List[KnowledgeUnit]] = None):
        self._lock = threading.Lock()
        self._units: Dict[str, KnowledgeUnit] = {u.id: u for u in units or []}

    async def create_unit(
        self,
        title: str,
        content: str,
        urls: List[str],
        document_ids: Optional[List[str]] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        document_ids = list(document_ids or [])
        unit = KnowledgeUnit(
            id=f"unit-{uuid.uuid4().hex[:12]}",
            title=title,
            content=content,
            source_urls=[
                SourceUrl(url=u, added_at=now, last_fetched_at=now) for u in urls
            ],
            document_ids=document_ids,
            history=[
                HistoryEntry(
                    date=now,
                    action="created",
                    summary=_history_summary("Created", len(urls) + len(document_ids)),
                )
            ],
            created_at=now,
            updated_at=now,
            last_refreshed_at=now,
        )
        with self._lock:
            self._units[unit.id] = unit
        logger.info(f"Created unit {unit.id}: '{title}'")
        return unit.id

    async def update_unit(
        self,
        unit_id: str,
        title: str,
        content: str,
        urls: List[str],
        document_ids: Optional[List[str]] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        document_ids = list(document_ids or [])

        with self._lock:
            unit = self._units.get(unit_id)
            if unit is None:
                raise UnitNotFoundError(f"Knowledge unit not found: {unit_id}")

            by_normalized = {normalize_url(s.url): s for s in unit.source_urls}
            for url in urls:
                existing = by_normalized.get(normalize_url(url))
                if existing is not None:
                    existing.last_fetched_at = now
                else:
                    entry = SourceUrl(url=url, added_at=now, last_fetched_at=now)
                    unit.source_urls.append(entry)
                    by_normalized[normalize_url(url)] = entry

            for document_id in document_ids:
                if document_id not in unit.document_ids:
                    unit.document_ids.append(document_id)

            unit.title = title
            unit.content = content
            unit.updated_at = now
            unit.last_refreshed_at = now
            unit.history.append(
                HistoryEntry(
                    date=now,
                    action="updated",
                    summary=_history_summary("Updated", len(urls) + len(document_ids)),
                )
            )

        logger.info(f"Updated unit {unit_id}: '{title}'")
        return unit_id

    async def get_unit(self, unit_id: str) -> Optional[KnowledgeUnit]:
        with self._lock:
            unit = self._units.get(unit_id)
            return unit.model_copy(deep=True) if unit else None

    async def list_units(self) -> List[KnowledgeUnit]:
        with self._lock:
            return [u.model_copy(deep=True) for u in self._units.values()]
