"""Tests for batched, concurrent contact analysis."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest

from contact_engagement.analysis.analyzer import ContactAnalyzer
from contact_engagement.analysis.cache import AnalysisCache
from contact_engagement.batch import (
    ANALYZING_STAGE,
    CANCELLED_STAGE,
    COMPLETE_STAGE,
    ERROR_STAGE,
    BatchCoordinator,
    BatchOptions,
    CancellationToken,
    estimated_analysis_seconds,
    recommended_batch_size,
    recommended_chunk_size,
    recommended_concurrency,
)
from contact_engagement.core.config import AppSettings, BatchSettings
from contact_engagement.core.interfaces import AnalysisCancelled, BatchAnalysisError
from contact_engagement.core.models import (
    AnalysisResult,
    Contact,
    ContactCategory,
    EmailInteraction,
    ProgressUpdate,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


class FailingAnalyzer(ContactAnalyzer):
    """Analyzer that raises for one contact id."""

    def __init__(self, failing_id: str) -> None:
        super().__init__()
        self.failing_id = failing_id

    def analyze(self, contact_id: str, interactions, **kwargs) -> AnalysisResult:
        if contact_id == self.failing_id:
            raise RuntimeError(f"cannot analyse {contact_id}")
        return super().analyze(contact_id, interactions, **kwargs)


def _contacts(count: int) -> list[Contact]:
    return [
        Contact(id=f"c{index}", name=f"Contact {index}", email=f"c{index}@example.com")
        for index in range(count)
    ]


def _history(contacts: Sequence[Contact]) -> list[EmailInteraction]:
    interactions: list[EmailInteraction] = []
    for index, contact in enumerate(contacts):
        days_ago = index % 200
        sent_at = NOW - timedelta(days=days_ago, hours=5)
        interactions.append(
            EmailInteraction(f"s{index}", contact.id, "Hi", sent_at, "sent", "t")
        )
        if index % 3:
            interactions.append(
                EmailInteraction(
                    f"r{index}",
                    contact.id,
                    "Re: Hi",
                    sent_at + timedelta(hours=index % 48 + 1),
                    "received",
                    "t",
                )
            )
    return interactions


def _coordinator(analyzer: ContactAnalyzer | None = None) -> BatchCoordinator:
    return BatchCoordinator(analyzer, clock=lambda: NOW)


def _fingerprint(results: Sequence[AnalysisResult]) -> list[tuple]:
    return [
        (r.contact_id, r.category, r.confidence_score, r.metrics, r.insights)
        for r in results
    ]


def test_recommendation_tables() -> None:
    assert recommended_batch_size(99) == 25
    assert recommended_batch_size(100) == 50
    assert recommended_batch_size(499) == 75
    assert recommended_batch_size(1999) == 100
    assert recommended_batch_size(4999) == 150
    assert recommended_batch_size(9999) == 200
    assert recommended_batch_size(10000) == 300

    assert recommended_concurrency(1000) == 2
    assert recommended_concurrency(1001) == 3
    assert recommended_concurrency(5001) == 4
    assert recommended_concurrency(50000, ceiling=3) == 3

    assert recommended_chunk_size(99) == 20
    assert recommended_chunk_size(150) == 50
    assert recommended_chunk_size(2500) == 200

    assert estimated_analysis_seconds(50) == 10
    assert estimated_analysis_seconds(20000) == 600


def test_results_identical_across_batch_sizes() -> None:
    contacts = _contacts(230)
    interactions = _history(contacts)

    baseline = _coordinator().analyze_all(
        contacts, interactions, BatchOptions(batch_size=230, max_concurrent_batches=1)
    )
    for batch_size, concurrency in ((1, 4), (7, 3), (50, 2)):
        results = _coordinator().analyze_all(
            contacts,
            interactions,
            BatchOptions(batch_size=batch_size, max_concurrent_batches=concurrency),
        )
        assert _fingerprint(results) == _fingerprint(baseline)

    assert len(baseline) == 230
    assert {r.contact_id for r in baseline} == {c.id for c in contacts}


def test_results_are_sorted_for_attention() -> None:
    contacts = _contacts(120)

    results = _coordinator().analyze_all(contacts, _history(contacts))

    keys = [
        (
            ["recent", "in_touch", "inactive"].index(r.category.value),
            -r.response_rate,
        )
        for r in results
    ]
    assert keys == sorted(keys)


def test_ten_thousand_contacts_report_total_exactly_once() -> None:
    contacts = _contacts(10000)
    interactions = [
        EmailInteraction(f"i{index}", contact.id, "Hi", NOW, "received", None)
        for index, contact in enumerate(contacts)
    ]
    events: list[ProgressUpdate] = []
    completed: list[bool] = []

    results = _coordinator().analyze_all(
        contacts,
        interactions,
        BatchOptions(
            on_progress=events.append, on_complete=lambda: completed.append(True)
        ),
    )

    assert len(results) == 10000
    analyzing = [event for event in events if event.stage == ANALYZING_STAGE]
    processed = [event.items_processed for event in analyzing]
    assert processed == sorted(processed)
    assert processed.count(10000) == 1
    assert events[-1].stage == COMPLETE_STAGE
    assert events[-1].progress == 100
    assert completed == [True]
    progress_values = [event.progress for event in events]
    assert progress_values == sorted(progress_values)


def test_failing_unit_aborts_run_and_reports_once() -> None:
    contacts = _contacts(10)
    errors: list[BaseException] = []
    events: list[ProgressUpdate] = []
    cache = AnalysisCache()
    cache["stale"] = _coordinator().analyze_all(_contacts(1), [])[0]

    with pytest.raises(BatchAnalysisError) as excinfo:
        _coordinator(FailingAnalyzer("c5")).analyze_all(
            contacts,
            _history(contacts),
            BatchOptions(
                batch_size=2,
                max_concurrent_batches=2,
                on_error=errors.append,
                on_progress=events.append,
            ),
            cache=cache,
        )

    assert len(errors) == 1
    assert errors[0] is excinfo.value
    assert excinfo.value.batch_index == 2
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert events[-1].stage == ERROR_STAGE
    assert all(event.stage != COMPLETE_STAGE for event in events)
    assert list(cache) == ["stale"]


def test_cancelled_token_stops_before_analysis() -> None:
    token = CancellationToken()
    token.cancel("user request")
    events: list[ProgressUpdate] = []
    errors: list[BaseException] = []

    with pytest.raises(AnalysisCancelled, match="user request"):
        _coordinator().analyze_all(
            _contacts(5),
            [],
            BatchOptions(
                cancel_token=token, on_progress=events.append, on_error=errors.append
            ),
        )

    assert events[-1].stage == CANCELLED_STAGE
    assert errors == []


def test_cancel_during_analysis() -> None:
    contacts = _contacts(200)
    token = CancellationToken()
    events: list[ProgressUpdate] = []

    def on_progress(update: ProgressUpdate) -> None:
        events.append(update)
        if update.stage == ANALYZING_STAGE and update.items_processed > 0:
            token.cancel("stop")

    with pytest.raises(AnalysisCancelled):
        _coordinator().analyze_all(
            contacts,
            _history(contacts),
            BatchOptions(
                batch_size=10,
                max_concurrent_batches=1,
                on_progress=on_progress,
                cancel_token=token,
            ),
        )

    assert events[-1].stage == CANCELLED_STAGE
    assert events[-1].items_processed < len(contacts)


def test_cache_replaced_with_latest_run() -> None:
    cache = AnalysisCache()
    coordinator = _coordinator()
    coordinator.analyze_all(_contacts(3), [], cache=cache)

    results = coordinator.analyze_all(_contacts(2), [], cache=cache)

    assert sorted(cache) == ["c0", "c1"]
    assert cache["c0"] is next(r for r in results if r.contact_id == "c0")


def test_plain_dict_cache_is_supported() -> None:
    cache: dict[str, AnalysisResult] = {"old": None}  # type: ignore[dict-item]

    _coordinator().analyze_all(_contacts(2), [], cache=cache)

    assert sorted(cache) == ["c0", "c1"]


def test_empty_contact_list_completes() -> None:
    events: list[ProgressUpdate] = []

    results = _coordinator().analyze_all(
        [], [], BatchOptions(on_progress=events.append)
    )

    assert results == []
    assert events[-1].stage == COMPLETE_STAGE


def test_contacts_without_interactions_are_inactive() -> None:
    results = _coordinator().analyze_all(_contacts(3), [])

    assert {r.category for r in results} == {ContactCategory.INACTIVE}
    assert {r.confidence_score for r in results} == {40}


@pytest.mark.parametrize(
    "options",
    [
        BatchOptions(batch_size=0),
        BatchOptions(max_concurrent_batches=-1),
        BatchOptions(chunk_size=0),
    ],
)
def test_non_positive_options_rejected(options: BatchOptions) -> None:
    with pytest.raises(ValueError):
        _coordinator().analyze_all(_contacts(3), [], options)


def test_settings_supply_batch_defaults() -> None:
    settings = AppSettings(batch=BatchSettings(concurrency_ceiling=1))
    coordinator = BatchCoordinator(settings=settings)

    assert coordinator.recommended_concurrency(20000) == 1
    assert coordinator.recommended_batch_size(20000) == 300


def test_async_entry_point() -> None:
    contacts = _contacts(4)

    results = asyncio.run(
        _coordinator().analyze_all_async(contacts, _history(contacts))
    )

    assert len(results) == 4


def test_analyze_all_leaves_thread_event_loop_alone() -> None:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        _coordinator().analyze_all(_contacts(3), [])

        assert asyncio.get_event_loop() is loop
        assert not loop.is_closed()
    finally:
        asyncio.set_event_loop(None)
        loop.close()
