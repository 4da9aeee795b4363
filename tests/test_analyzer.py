"""Tests for the per-contact analyzer and the sequential service."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from contact_engagement.analysis.analyzer import (
    ContactAnalyzer,
    derive_tags,
    generate_insights,
)
from contact_engagement.analysis.service import (
    ContactAnalysisService,
    needing_attention,
    sort_results,
    summarize,
)
from contact_engagement.core.models import (
    AnalysisResult,
    Contact,
    ContactCategory,
    ContactMetrics,
    EmailInteraction,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _result(
    contact_id: str,
    category: ContactCategory,
    response_rate: float,
    *,
    total: int = 4,
    last_contact: datetime | None = None,
) -> AnalysisResult:
    return AnalysisResult(
        contact_id=contact_id,
        category=category,
        confidence_score=50,
        metrics=ContactMetrics(
            total_emails=total,
            response_rate=response_rate,
            last_contact_at=last_contact,
        ),
        insights=(),
        analyzed_at=NOW,
    )


def test_analyze_contact_without_history() -> None:
    analyzer = ContactAnalyzer(clock=lambda: NOW)

    result = analyzer.analyze("c1", [])

    assert result.category is ContactCategory.INACTIVE
    assert result.confidence_score == 40
    assert result.analyzed_at == NOW
    assert "Never contacted - perfect for cold outreach" in result.insights
    assert not any("Low response rate" in line for line in result.insights)


def test_analyze_recent_conversation() -> None:
    analyzer = ContactAnalyzer()
    history = [
        EmailInteraction("1", "c1", "Hi", NOW - timedelta(days=2), "sent", "t"),
        EmailInteraction("2", "c1", "Re", NOW - timedelta(days=1), "received", "t"),
    ]
    contact = Contact(id="c1", name="Ada", email="ada@example.com")

    result = analyzer.analyze(
        "c1", history, now=NOW, contact=contact, segments=("partner",)
    )

    assert result.category is ContactCategory.RECENT
    assert result.contact == contact
    assert result.segments == ("partner",)
    assert result.insights[0] == "Active communication with 2 emails"
    assert "Very recent contact - relationship is active" in result.insights
    assert "High response rate - very responsive contact" in result.insights
    assert result.tags == ("highly-responsive", "recent-contact")


def test_in_touch_insights_mention_last_contact() -> None:
    metrics = ContactMetrics(
        total_emails=4, sent_emails=2, days_since_last_contact=60, response_rate=0.6
    )

    insights = generate_insights(metrics, ContactCategory.IN_TOUCH)

    assert insights[:2] == (
        "Good relationship - not very recent but responsive",
        "Last contact 60 days ago",
    )
    assert "Good historical response rate - likely to re-engage" in insights


def test_low_response_rate_insight_requires_sent_mail() -> None:
    metrics = ContactMetrics(
        total_emails=6, sent_emails=6, days_since_last_contact=200
    )

    insights = generate_insights(metrics, ContactCategory.INACTIVE)

    assert "6 emails but no recent activity" in insights
    assert insights[-1] == "Low response rate - may need different approach"


def test_reconnect_tag_for_inactive_contact_with_history() -> None:
    metrics = ContactMetrics(total_emails=12, days_since_last_contact=300)

    assert derive_tags(metrics, ContactCategory.INACTIVE) == (
        "frequent-contact",
        "reconnect-opportunity",
    )


def test_sort_results_orders_by_category_then_rate() -> None:
    results = [
        _result("a", ContactCategory.INACTIVE, 0.9),
        _result("b", ContactCategory.RECENT, 0.1),
        _result("c", ContactCategory.IN_TOUCH, 0.5),
        _result("d", ContactCategory.RECENT, 0.7),
    ]

    ordered = [result.contact_id for result in sort_results(results)]

    assert ordered == ["d", "b", "c", "a"]


def test_summarize_counts_and_averages() -> None:
    results = [
        _result("a", ContactCategory.RECENT, 1.0),
        _result("b", ContactCategory.INACTIVE, 0.0),
    ]

    summary = summarize(results)

    assert summary.total == 2
    assert summary.recent == 1
    assert summary.in_touch == 0
    assert summary.inactive == 1
    assert summary.average_response_rate == 0.5
    assert summary.average_confidence_score == 50


def test_summarize_empty() -> None:
    summary = summarize([])

    assert summary.total == 0
    assert summary.average_response_rate == 0.0


def test_needing_attention_prefers_responsive_inactive_contacts() -> None:
    earlier = NOW - timedelta(days=300)
    later = NOW - timedelta(days=200)
    results = [
        _result("cold", ContactCategory.INACTIVE, 0.0, total=0),
        _result("old", ContactCategory.INACTIVE, 0.8, last_contact=earlier),
        _result("newer", ContactCategory.INACTIVE, 0.8, last_contact=later),
        _result("best", ContactCategory.INACTIVE, 0.9, last_contact=earlier),
        _result("lukewarm", ContactCategory.INACTIVE, 0.5),
        _result("active", ContactCategory.RECENT, 1.0),
    ]

    ordered = [result.contact_id for result in needing_attention(results)]

    assert ordered == ["best", "newer", "old"]


def test_service_caches_every_result() -> None:
    service = ContactAnalysisService()
    contacts = [
        Contact(id="c1", name="Ada", email="ada@example.com"),
        Contact(id="c2", name="Bob", email="bob@example.com"),
    ]
    interactions = [
        EmailInteraction("1", "c1", "Hi", NOW - timedelta(days=1), "sent", None),
    ]

    results = service.analyze_contacts(contacts, interactions, now=NOW)

    assert [result.contact_id for result in results] == ["c1", "c2"]
    assert service.cached("c1") is results[0]
    assert service.cached("c2").category is ContactCategory.INACTIVE
    assert service.cached("missing") is None


def test_service_cache_only_holds_latest_run() -> None:
    service = ContactAnalysisService()
    first = [Contact(id="a", name="", email=""), Contact(id="b", name="", email="")]

    service.analyze_contacts(first, [], now=NOW)
    service.analyze_contacts(first[:1], [], now=NOW)

    assert sorted(service.cache) == ["a"]
    assert service.cached("b") is None


@pytest.mark.parametrize(
    ("days_ago", "expected"),
    [(30, ContactCategory.RECENT), (31, ContactCategory.INACTIVE)],
)
def test_single_sent_message_recency_boundary(
    days_ago: int, expected: ContactCategory
) -> None:
    history = [
        EmailInteraction(
            "1", "c1", "Hi", NOW - timedelta(days=days_ago), "sent", None
        ),
    ]

    result = ContactAnalyzer().analyze("c1", history, now=NOW)

    assert result.metrics.days_since_last_contact == days_ago
    assert result.category is expected
