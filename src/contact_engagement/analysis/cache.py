"""Volatile in-memory cache of analysis results keyed by contact id."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, MutableMapping
from datetime import UTC, datetime, timedelta

from contact_engagement.core.models import AnalysisResult

LOGGER = logging.getLogger(__name__)


class CacheEntry:
    """Cache entry with optional expiration time."""

    def __init__(self, value: AnalysisResult, ttl_seconds: int | None = None) -> None:
        self.value = value
        self.expires_at = (
            datetime.now(tz=UTC) + timedelta(seconds=ttl_seconds)
            if ttl_seconds is not None
            else None
        )

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return self.expires_at is not None and datetime.now(tz=UTC) > self.expires_at


class AnalysisCache(MutableMapping[str, AnalysisResult]):
    """Analysis results from the latest run.

    The cache is never authoritative: dropping it at any time only costs a
    re-analysis.
    """

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._ttl_seconds = ttl_seconds

    def __getitem__(self, contact_id: str) -> AnalysisResult:
        entry = self._entries[contact_id]
        if entry.is_expired():
            LOGGER.debug("Cache expired for contact: %s", contact_id)
            del self._entries[contact_id]
            raise KeyError(contact_id)
        return entry.value

    def __setitem__(self, contact_id: str, result: AnalysisResult) -> None:
        self._entries[contact_id] = CacheEntry(result, self._ttl_seconds)

    def __delitem__(self, contact_id: str) -> None:
        del self._entries[contact_id]

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def replace(self, results: Iterable[AnalysisResult]) -> None:
        """Overwrite the whole cache with the results of a new run."""
        self._entries = {
            result.contact_id: CacheEntry(result, self._ttl_seconds)
            for result in results
        }
        LOGGER.debug("Cache replaced with %d analysis results", len(self._entries))

    def invalidate(self, contact_id: str | None = None) -> int:
        """Drop one contact's entry, or every entry when no id is given."""
        if contact_id is not None:
            removed = self._entries.pop(contact_id, None)
            return 1 if removed is not None else 0

        count = len(self._entries)
        self._entries.clear()
        LOGGER.info("Invalidated all %d cached analysis results", count)
        return count


def replace_cached_results(
    cache: MutableMapping[str, AnalysisResult], results: Iterable[AnalysisResult]
) -> None:
    """Overwrite ``cache`` wholesale, whatever mapping type it is."""
    if isinstance(cache, AnalysisCache):
        cache.replace(results)
        return
    cache.clear()
    cache.update((result.contact_id, result) for result in results)


__all__ = ["AnalysisCache", "CacheEntry", "replace_cached_results"]
