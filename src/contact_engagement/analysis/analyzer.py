"""Compose metrics, categorisation and scoring into one contact analysis."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from contact_engagement.core.config import AnalysisSettings
from contact_engagement.core.datetime_utils import utc_now
from contact_engagement.core.models import (
    AnalysisResult,
    Contact,
    ContactCategory,
    ContactMetrics,
    EmailInteraction,
)

from .category import Categorizer
from .confidence import score_confidence
from .metrics import calculate_metrics


class ContactAnalyzer:
    """Analyse a contact's interaction history.

    The analyzer holds configuration only; every call is a pure function of
    its arguments, so one instance is safely shared by concurrent workers.
    """

    def __init__(
        self,
        settings: AnalysisSettings | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings or AnalysisSettings()
        self._categorizer = Categorizer(self._settings.thresholds)
        self._reply_window = timedelta(days=self._settings.reply_window_days)
        self._clock = clock

    def analyze(
        self,
        contact_id: str,
        interactions: Sequence[EmailInteraction],
        *,
        now: datetime | None = None,
        contact: Contact | None = None,
        segments: tuple[str, ...] = (),
    ) -> AnalysisResult:
        """Return the category, confidence and insights for one contact."""
        reference = now or self._clock()
        metrics = calculate_metrics(
            interactions, now=reference, reply_window=self._reply_window
        )
        category = self._categorizer.categorize(metrics)
        return AnalysisResult(
            contact_id=contact_id,
            category=category,
            confidence_score=score_confidence(metrics, category),
            metrics=metrics,
            insights=generate_insights(metrics, category),
            analyzed_at=reference,
            tags=derive_tags(metrics, category),
            segments=tuple(segments),
            contact=contact,
        )


def generate_insights(
    metrics: ContactMetrics, category: ContactCategory
) -> tuple[str, ...]:
    """Return short human-readable observations about a contact."""
    insights: list[str] = []

    if category is ContactCategory.RECENT:
        insights.append(f"Active communication with {metrics.total_emails} emails")
        if metrics.days_since_last_contact < 3:
            insights.append("Very recent contact - relationship is active")
        if metrics.response_rate > 0.8:
            insights.append("Excellent response rate - highly engaged contact")
    elif category is ContactCategory.IN_TOUCH:
        insights.append("Good relationship - not very recent but responsive")
        insights.append(f"Last contact {int(metrics.days_since_last_contact)} days ago")
        if metrics.response_rate > 0.5:
            insights.append("Good historical response rate - likely to re-engage")
    else:
        insights.append("Limited communication history")
        if metrics.total_emails == 0:
            insights.append("Never contacted - perfect for cold outreach")
        else:
            insights.append(f"{metrics.total_emails} emails but no recent activity")

    if metrics.response_rate > 0.7:
        insights.append("High response rate - very responsive contact")
    elif metrics.sent_emails and metrics.response_rate < 0.3:
        insights.append("Low response rate - may need different approach")

    return tuple(insights)


def derive_tags(metrics: ContactMetrics, category: ContactCategory) -> tuple[str, ...]:
    """Return machine-friendly labels derived from the analysis."""
    tags: list[str] = []
    if metrics.response_rate > 0.8:
        tags.append("highly-responsive")
    if metrics.days_since_last_contact < 7:
        tags.append("recent-contact")
    if metrics.total_emails > 10:
        tags.append("frequent-contact")
    if category is ContactCategory.INACTIVE and metrics.total_emails > 5:
        tags.append("reconnect-opportunity")
    return tuple(tags)


__all__ = ["ContactAnalyzer", "derive_tags", "generate_insights"]
