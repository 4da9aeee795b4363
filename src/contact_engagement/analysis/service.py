"""Contact analysis over whole contact lists, plus result summaries."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from datetime import datetime
from types import MappingProxyType

from contact_engagement.core.datetime_utils import utc_now
from contact_engagement.core.interfaces import SegmentationProvider
from contact_engagement.core.models import (
    CATEGORY_PRIORITY,
    AnalysisResult,
    AnalysisSummary,
    Contact,
    ContactCategory,
    EmailInteraction,
)

from .analyzer import ContactAnalyzer
from .cache import AnalysisCache, replace_cached_results

LOGGER = logging.getLogger(__name__)

InteractionsByContact = Mapping[str, tuple[EmailInteraction, ...]]


def group_interactions_by_contact(
    interactions: Iterable[EmailInteraction],
) -> InteractionsByContact:
    """Group interactions by contact id into a read-only mapping."""
    grouped: dict[str, list[EmailInteraction]] = {}
    for interaction in interactions:
        grouped.setdefault(interaction.contact_id, []).append(interaction)
    return MappingProxyType(
        {contact_id: tuple(items) for contact_id, items in grouped.items()}
    )


def sort_results(results: Iterable[AnalysisResult]) -> list[AnalysisResult]:
    """Order results by category priority, then by response rate descending."""
    return sorted(
        results,
        key=lambda result: (
            CATEGORY_PRIORITY.get(result.category, len(CATEGORY_PRIORITY)),
            -result.metrics.response_rate,
        ),
    )


def summarize(results: Sequence[AnalysisResult]) -> AnalysisSummary:
    """Count results per category and average their rates and scores."""
    if not results:
        return AnalysisSummary(total=0, counts={})
    counts = Counter(result.category for result in results)
    return AnalysisSummary(
        total=len(results),
        counts={category: counts.get(category, 0) for category in ContactCategory},
        average_response_rate=sum(r.metrics.response_rate for r in results)
        / len(results),
        average_confidence_score=sum(r.confidence_score for r in results)
        / len(results),
    )


def needing_attention(results: Iterable[AnalysisResult]) -> list[AnalysisResult]:
    """Return inactive contacts that used to answer, best prospects first."""
    candidates = [
        result
        for result in results
        if result.category is ContactCategory.INACTIVE
        and result.metrics.total_emails > 0
        and result.metrics.response_rate > 0.5
    ]
    return sorted(
        candidates,
        key=lambda result: (
            -result.metrics.response_rate,
            -(
                result.metrics.last_contact_at.timestamp()
                if result.metrics.last_contact_at
                else 0.0
            ),
        ),
    )


class ContactAnalysisService:
    """Sequential analysis of a contact list with a volatile result cache.

    Suited to small lists; large sets go through
    :class:`contact_engagement.batch.BatchCoordinator`.
    """

    def __init__(
        self,
        analyzer: ContactAnalyzer | None = None,
        *,
        cache: MutableMapping[str, AnalysisResult] | None = None,
        segmentation: SegmentationProvider | None = None,
    ) -> None:
        self._analyzer = analyzer or ContactAnalyzer()
        self._cache = cache if cache is not None else AnalysisCache()
        self._segmentation = segmentation

    @property
    def cache(self) -> MutableMapping[str, AnalysisResult]:
        return self._cache

    def analyze_contacts(
        self,
        contacts: Sequence[Contact],
        interactions: Iterable[EmailInteraction],
        *,
        now: datetime | None = None,
    ) -> list[AnalysisResult]:
        """Analyse every contact and replace the cache with the new results."""
        reference = now or utc_now()
        grouped = group_interactions_by_contact(interactions)
        results: list[AnalysisResult] = []
        for contact in contacts:
            segments = (
                self._segmentation.segments_for(contact) if self._segmentation else ()
            )
            result = self._analyzer.analyze(
                contact.id,
                grouped.get(contact.id, ()),
                now=reference,
                contact=contact,
                segments=segments,
            )
            results.append(result)
        replace_cached_results(self._cache, results)
        LOGGER.debug("Analysed %d contact(s) sequentially", len(results))
        return results

    def cached(self, contact_id: str) -> AnalysisResult | None:
        """Return the cached result for a contact if present."""
        return self._cache.get(contact_id)


__all__ = [
    "ContactAnalysisService",
    "InteractionsByContact",
    "group_interactions_by_contact",
    "needing_attention",
    "sort_results",
    "summarize",
]
