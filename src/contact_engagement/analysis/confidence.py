"""Heuristic confidence scoring for contact categories."""

from __future__ import annotations

from contact_engagement.core.models import ContactCategory, ContactMetrics

BASE_SCORE = 50

_CATEGORY_ADJUSTMENTS = {
    ContactCategory.RECENT: 10,
    ContactCategory.IN_TOUCH: 5,
    ContactCategory.INACTIVE: -10,
}


def score_confidence(metrics: ContactMetrics, category: ContactCategory) -> int:
    """Return a confidence score from 0 (guess) to 100 (certain)."""
    score = BASE_SCORE

    # More history
    if metrics.total_emails > 5:
        score += 20
    if metrics.total_emails > 10:
        score += 10

    # Recent activity
    if metrics.days_since_last_contact < 7:
        score += 15
    if metrics.days_since_last_contact < 30:
        score += 10

    # Responsiveness
    if metrics.response_rate > 0.7:
        score += 15
    if metrics.response_rate > 0.5:
        score += 10

    score += _CATEGORY_ADJUSTMENTS[category]

    return max(0, min(score, 100))


__all__ = ["BASE_SCORE", "score_confidence"]
