"""Execution unit analysing one batch of contacts in chunks."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from contact_engagement.analysis.analyzer import ContactAnalyzer
from contact_engagement.analysis.service import InteractionsByContact
from contact_engagement.core.models import AnalysisResult, Contact

from .cancellation import CancellationToken

LOGGER = logging.getLogger(__name__)

MIN_CHUNK_SIZE = 10

UnitProgress = Callable[[int, int, int], None]


@dataclass(frozen=True, slots=True)
class BatchJob:
    """Immutable unit of work handed to a worker thread."""

    index: int
    contacts: tuple[Contact, ...]
    chunk_size: int
    now: datetime
    segments: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def job_id(self) -> str:
        return f"batch-{self.index}"


def run_batch(
    job: BatchJob,
    interactions_by_contact: InteractionsByContact,
    analyzer: ContactAnalyzer,
    *,
    report: UnitProgress | None = None,
    token: CancellationToken | None = None,
) -> list[AnalysisResult]:
    """Analyse ``job.contacts`` chunk by chunk.

    ``report`` receives ``(batch_index, processed, total)`` after every chunk.
    The unit only reads the shared ``interactions_by_contact`` mapping and
    returns a result list it owns.
    """
    started = time.perf_counter()
    total = len(job.contacts)
    size = max(MIN_CHUNK_SIZE, job.chunk_size)
    results: list[AnalysisResult] = []
    processed = 0

    for start in range(0, total, size):
        if token is not None:
            token.raise_if_cancelled()
        chunk: Sequence[Contact] = job.contacts[start : start + size]
        for contact in chunk:
            results.append(
                analyzer.analyze(
                    contact.id,
                    interactions_by_contact.get(contact.id, ()),
                    now=job.now,
                    contact=contact,
                    segments=job.segments.get(contact.id, ()),
                )
            )
        processed += len(chunk)
        if report is not None:
            report(job.index, processed, total)
        # Yield to sibling units between chunks.
        time.sleep(0)

    elapsed_ms = (time.perf_counter() - started) * 1000
    if total:
        LOGGER.debug(
            "[%s] Analysed %d contacts in %.0fms (%.2fms/contact)",
            job.job_id,
            total,
            elapsed_ms,
            elapsed_ms / total,
        )
    return results


__all__ = ["BatchJob", "MIN_CHUNK_SIZE", "run_batch"]
