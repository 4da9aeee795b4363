"""Batched, bounded-concurrency analysis of large contact sets."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Iterable, MutableMapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType

from contact_engagement.analysis.analyzer import ContactAnalyzer
from contact_engagement.analysis.cache import replace_cached_results
from contact_engagement.analysis.service import (
    InteractionsByContact,
    sort_results,
    summarize,
)
from contact_engagement.core.config import AppSettings
from contact_engagement.core.datetime_utils import utc_now
from contact_engagement.core.interfaces import (
    AnalysisCancelled,
    BatchAnalysisError,
    SegmentationProvider,
)
from contact_engagement.core.models import (
    AnalysisResult,
    Contact,
    ContactCategory,
    EmailInteraction,
)

from .cancellation import CancellationToken
from .progress import (
    ANALYZING_STAGE,
    FINALIZING_STAGE,
    PREPARING_STAGE,
    CompleteCallback,
    ErrorCallback,
    ProgressCallback,
    ProgressTracker,
)
from .worker import MIN_CHUNK_SIZE, BatchJob, run_batch

LOGGER = logging.getLogger(__name__)

_PREPARE_REPORT_EVERY = 1000

_BATCH_SIZE_TABLE: tuple[tuple[int, int], ...] = (
    (100, 25),
    (200, 50),
    (500, 75),
    (2000, 100),
    (5000, 150),
    (10000, 200),
)
_LARGEST_BATCH_SIZE = 300

_CONCURRENCY_TABLE: tuple[tuple[int, int], ...] = (
    (5000, 4),
    (1000, 3),
)
_DEFAULT_CONCURRENCY = 2
DEFAULT_CONCURRENCY_CEILING = 6

_CHUNK_SIZE_TABLE: tuple[tuple[int, int], ...] = (
    (100, 20),
    (500, 50),
    (1000, 100),
    (2000, 150),
)
_LARGEST_CHUNK_SIZE = 200

_ESTIMATE_TABLE: tuple[tuple[int, int], ...] = (
    (100, 10),
    (1000, 30),
    (5000, 120),
    (10000, 300),
)
_LARGEST_ESTIMATE_SECONDS = 600


def recommended_batch_size(contact_count: int) -> int:
    """Return contacts per batch; larger sets get larger batches."""
    for upper_bound, size in _BATCH_SIZE_TABLE:
        if contact_count < upper_bound:
            return size
    return _LARGEST_BATCH_SIZE


def recommended_concurrency(
    contact_count: int, ceiling: int = DEFAULT_CONCURRENCY_CEILING
) -> int:
    """Return how many batches run at once, never above ``ceiling``."""
    concurrency = _DEFAULT_CONCURRENCY
    for lower_bound, value in _CONCURRENCY_TABLE:
        if contact_count > lower_bound:
            concurrency = value
            break
    return max(1, min(concurrency, ceiling))


def recommended_chunk_size(batch_size: int) -> int:
    """Return contacts analysed between two progress reports of a unit."""
    for upper_bound, size in _CHUNK_SIZE_TABLE:
        if batch_size < upper_bound:
            return size
    return _LARGEST_CHUNK_SIZE


def estimated_analysis_seconds(contact_count: int) -> int:
    """Rough wall-clock estimate for analysing ``contact_count`` contacts."""
    for upper_bound, seconds in _ESTIMATE_TABLE:
        if contact_count < upper_bound:
            return seconds
    return _LARGEST_ESTIMATE_SECONDS


@dataclass(slots=True)
class BatchOptions:
    """Per-run sizing, callbacks, and cancellation for :meth:`analyze_all`."""

    batch_size: int | None = None
    max_concurrent_batches: int | None = None
    chunk_size: int | None = None
    on_progress: ProgressCallback | None = None
    on_complete: CompleteCallback | None = None
    on_error: ErrorCallback | None = None
    cancel_token: CancellationToken | None = None


class _ProgressAggregator:
    """Fold per-unit counts into one global count on the event-loop thread."""

    def __init__(self, tracker: ProgressTracker, total: int) -> None:
        self._tracker = tracker
        self._total = total
        self._per_batch: dict[int, int] = {}
        self._closed = False
        self.processed = 0

    def record(self, batch_index: int, processed: int) -> None:
        if self._closed:
            return
        previous = self._per_batch.get(batch_index, 0)
        delta = processed - previous
        if delta <= 0:
            return
        self._per_batch[batch_index] = processed
        self.processed = min(self._total, self.processed + delta)
        self._tracker.update(
            ANALYZING_STAGE,
            self.processed,
            self._total,
            f"Analyzing {self.processed:,} / {self._total:,} contacts...",
        )

    def finish_batch(self, job: BatchJob) -> None:
        self.record(job.index, len(job.contacts))

    def close(self) -> None:
        self._closed = True


class BatchCoordinator:
    """Fan contact analysis out over bounded groups of worker threads.

    Batches run in groups of at most ``max_concurrent_batches``; the next
    group starts only after the whole current group finished. The first unit
    failure aborts the run.
    """

    def __init__(
        self,
        analyzer: ContactAnalyzer | None = None,
        *,
        settings: AppSettings | None = None,
        segmentation: SegmentationProvider | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings or AppSettings()
        self._analyzer = analyzer or ContactAnalyzer(self._settings.analysis)
        self._segmentation = segmentation
        self._clock = clock

    def recommended_batch_size(self, contact_count: int) -> int:
        return recommended_batch_size(contact_count)

    def recommended_concurrency(self, contact_count: int) -> int:
        return recommended_concurrency(
            contact_count, self._settings.batch.concurrency_ceiling
        )

    def analyze_all(
        self,
        contacts: Sequence[Contact],
        interactions: Iterable[EmailInteraction],
        options: BatchOptions | None = None,
        *,
        cache: MutableMapping[str, AnalysisResult] | None = None,
    ) -> list[AnalysisResult]:
        """Analyse every contact and return attention-ordered results.

        Blocks the caller while work runs on a private event loop; the
        calling thread's current loop is left untouched.
        """
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(
                self.analyze_all_async(contacts, interactions, options, cache=cache)
            )
        finally:
            loop.close()

    async def analyze_all_async(
        self,
        contacts: Sequence[Contact],
        interactions: Iterable[EmailInteraction],
        options: BatchOptions | None = None,
        *,
        cache: MutableMapping[str, AnalysisResult] | None = None,
    ) -> list[AnalysisResult]:
        """Coroutine form of :meth:`analyze_all` for callers with a loop."""
        opts = options or BatchOptions()
        contact_list = tuple(contacts)
        total = len(contact_list)
        batch_size = self._resolve_batch_size(opts, total)
        concurrency = self._resolve_concurrency(opts, total)
        chunk_size = _first_set(
            "chunk_size",
            opts.chunk_size,
            self._settings.batch.chunk_size,
            default=recommended_chunk_size(batch_size),
        )

        parent_token = opts.cancel_token or CancellationToken()
        token = parent_token.child()
        tracker = ProgressTracker(
            self._settings.progress,
            on_progress=opts.on_progress,
            on_complete=opts.on_complete,
            on_error=opts.on_error,
        )
        started = time.perf_counter()
        tracker.start(PREPARING_STAGE, f"Starting analysis of {total:,} contacts...")

        executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="contact-analysis"
        )
        try:
            grouped = self._group_interactions(interactions, tracker)
            segments = self._resolve_segments(contact_list)
            tracker.update(
                PREPARING_STAGE,
                1,
                1,
                f"Analysis preparation complete - {len(grouped):,} contacts "
                "with interactions",
            )
            token.raise_if_cancelled()

            now = self._clock()
            jobs = [
                BatchJob(
                    index=index,
                    contacts=contact_list[start : start + batch_size],
                    chunk_size=max(MIN_CHUNK_SIZE, chunk_size),
                    now=now,
                    segments=segments,
                )
                for index, start in enumerate(range(0, total, batch_size))
            ]
            LOGGER.info(
                "Starting batched analysis: %d contacts in %d batches of %d "
                "(max %d concurrent)",
                total,
                len(jobs),
                batch_size,
                concurrency,
            )
            tracker.update(
                ANALYZING_STAGE,
                0,
                total,
                f"Starting analysis of {total:,} contacts...",
            )

            aggregator = _ProgressAggregator(tracker, total)
            merged: list[AnalysisResult] = []
            for group_start in range(0, len(jobs), concurrency):
                token.raise_if_cancelled()
                group = jobs[group_start : group_start + concurrency]
                for batch_results in await self._run_group(
                    group, grouped, executor, aggregator, token
                ):
                    merged.extend(batch_results)
            token.raise_if_cancelled()

            tracker.update(FINALIZING_STAGE, 0, 1, "Finalizing results...")
            ordered = sort_results(merged)
            category_summary = _describe_categories(ordered)
            tracker.update(
                FINALIZING_STAGE, 1, 1, f"Results finalized - {category_summary}"
            )
            if cache is not None:
                replace_cached_results(cache, ordered)

            LOGGER.info(
                "Analysed %d contacts in %.0fms (%s)",
                len(ordered),
                (time.perf_counter() - started) * 1000,
                category_summary,
            )
            tracker.complete(
                f"Analysis complete: {len(ordered):,} contacts processed "
                f"({category_summary})"
            )
            return ordered
        except AnalysisCancelled as exc:
            LOGGER.info("Contact analysis cancelled: %s", exc)
            tracker.cancel(f"Analysis cancelled: {exc}")
            raise
        except Exception as exc:
            LOGGER.error("Contact analysis failed: %s", exc)
            tracker.error(exc, "Analysis failed")
            raise
        finally:
            token.cancel("Analysis finished")
            executor.shutdown(wait=True, cancel_futures=True)

    async def _run_group(
        self,
        group: Sequence[BatchJob],
        grouped: InteractionsByContact,
        executor: ThreadPoolExecutor,
        aggregator: _ProgressAggregator,
        token: CancellationToken,
    ) -> list[list[AnalysisResult]]:
        loop = asyncio.get_running_loop()

        def report(batch_index: int, processed: int, _total: int) -> None:
            loop.call_soon_threadsafe(aggregator.record, batch_index, processed)

        futures = {
            loop.run_in_executor(
                executor,
                functools.partial(
                    run_batch,
                    job,
                    grouped,
                    self._analyzer,
                    report=report,
                    token=token,
                ),
            ): job
            for job in group
        }
        done, pending = await asyncio.wait(
            futures, return_when=asyncio.FIRST_EXCEPTION
        )
        if any(future.exception() is not None for future in done):
            aggregator.close()
            token.cancel("Another batch failed")
            if pending:
                await asyncio.wait(pending)
            job, exc = _first_failure(futures)
            if isinstance(exc, AnalysisCancelled):
                raise exc
            raise BatchAnalysisError(
                f"Batch {job.index} failed: {exc}", batch_index=job.index
            ) from exc

        for job in group:
            aggregator.finish_batch(job)
        return [future.result() for future in futures]

    def _resolve_batch_size(self, opts: BatchOptions, total: int) -> int:
        return _first_set(
            "batch_size",
            opts.batch_size,
            self._settings.batch.batch_size,
            default=recommended_batch_size(total),
        )

    def _resolve_concurrency(self, opts: BatchOptions, total: int) -> int:
        return _first_set(
            "max_concurrent_batches",
            opts.max_concurrent_batches,
            self._settings.batch.max_concurrent_batches,
            default=self.recommended_concurrency(total),
        )

    def _group_interactions(
        self, interactions: Iterable[EmailInteraction], tracker: ProgressTracker
    ) -> InteractionsByContact:
        items = (
            interactions
            if isinstance(interactions, Sequence)
            else tuple(interactions)
        )
        total = len(items)
        grouped: dict[str, list[EmailInteraction]] = {}
        tracker.update(PREPARING_STAGE, 0, total, "Preparing contact analysis...")
        for index, interaction in enumerate(items, start=1):
            grouped.setdefault(interaction.contact_id, []).append(interaction)
            if index % _PREPARE_REPORT_EVERY == 0 or index == total:
                tracker.update(
                    PREPARING_STAGE,
                    index,
                    total,
                    f"Processing {index:,} / {total:,} email interactions...",
                )
        return _freeze(grouped)

    def _resolve_segments(
        self, contacts: Sequence[Contact]
    ) -> dict[str, tuple[str, ...]]:
        if self._segmentation is None:
            return {}
        resolved: dict[str, tuple[str, ...]] = {}
        for contact in contacts:
            tags = tuple(self._segmentation.segments_for(contact))
            if tags:
                resolved[contact.id] = tags
        return resolved


def _first_set(name: str, *candidates: int | None, default: int) -> int:
    for value in candidates:
        if value is not None:
            if value <= 0:
                raise ValueError(f"{name} must be positive")
            return value
    return default


def _freeze(grouped: dict[str, list[EmailInteraction]]) -> InteractionsByContact:
    return MappingProxyType(
        {contact_id: tuple(items) for contact_id, items in grouped.items()}
    )


def _first_failure(
    futures: dict[asyncio.Future[list[AnalysisResult]], BatchJob],
) -> tuple[BatchJob, BaseException]:
    """Return the lowest-index failure, preferring errors over cancellations."""
    failures = sorted(
        (
            (job, future.exception())
            for future, job in futures.items()
            if future.exception() is not None
        ),
        key=lambda item: item[0].index,
    )
    for job, exc in failures:
        if not isinstance(exc, AnalysisCancelled):
            return job, exc
    return failures[0]


def _describe_categories(results: Sequence[AnalysisResult]) -> str:
    summary = summarize(results)
    parts = [
        f"{summary.counts.get(category, 0)} {category.value}"
        for category in ContactCategory
        if summary.counts.get(category, 0)
    ]
    return ", ".join(parts) or "no contacts"


__all__ = [
    "BatchCoordinator",
    "BatchOptions",
    "DEFAULT_CONCURRENCY_CEILING",
    "estimated_analysis_seconds",
    "recommended_batch_size",
    "recommended_chunk_size",
    "recommended_concurrency",
]
