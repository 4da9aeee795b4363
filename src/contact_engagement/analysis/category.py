"""Rule-based engagement categorisation for contacts."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from contact_engagement.core.config import CategoryThresholds
from contact_engagement.core.models import ContactCategory, ContactMetrics

CategoryPredicate = Callable[[ContactMetrics, CategoryThresholds], bool]


@dataclass(frozen=True)
class _CategoryRule:
    category: ContactCategory
    predicate: CategoryPredicate


def _is_recent(metrics: ContactMetrics, limits: CategoryThresholds) -> bool:
    return (
        metrics.days_since_last_contact <= limits.recent_max_days
        or metrics.emails_last_30_days >= limits.recent_min_emails_30_days
        or (
            metrics.emails_last_90_days >= limits.recent_min_emails_90_days
            and metrics.response_rate >= limits.recent_min_response_rate
        )
    )


def _is_in_touch(metrics: ContactMetrics, limits: CategoryThresholds) -> bool:
    return (
        metrics.total_emails >= limits.in_touch_min_emails
        and metrics.response_rate >= limits.in_touch_min_response_rate
        and metrics.days_since_last_contact <= limits.in_touch_max_days
    )


DEFAULT_RULES: tuple[_CategoryRule, ...] = (
    _CategoryRule(ContactCategory.RECENT, _is_recent),
    _CategoryRule(ContactCategory.IN_TOUCH, _is_in_touch),
)


class Categorizer:
    """Assign a category by evaluating rules in priority order."""

    def __init__(
        self,
        thresholds: CategoryThresholds | None = None,
        rules: Sequence[_CategoryRule] | None = None,
        *,
        default_category: ContactCategory = ContactCategory.INACTIVE,
    ) -> None:
        self._thresholds = thresholds or CategoryThresholds()
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES
        self._default_category = default_category

    def categorize(self, metrics: ContactMetrics) -> ContactCategory:
        """Return the category of the first matching rule."""
        for rule in self._rules:
            if rule.predicate(metrics, self._thresholds):
                return rule.category
        return self._default_category


def categorize(
    metrics: ContactMetrics, thresholds: CategoryThresholds | None = None
) -> ContactCategory:
    """Categorise ``metrics`` with the default rule table."""
    return Categorizer(thresholds).categorize(metrics)


__all__ = ["Categorizer", "categorize"]
