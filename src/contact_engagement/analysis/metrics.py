"""Single-pass metric calculation over one contact's history."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from contact_engagement.core.models import (
    ContactMetrics,
    EmailInteraction,
    ThreadKey,
)

from .response_rate import DEFAULT_REPLY_WINDOW, estimate_response_rate

LOGGER = logging.getLogger(__name__)

_DAY = timedelta(days=1)


def calculate_metrics(
    interactions: Sequence[EmailInteraction],
    *,
    now: datetime,
    reply_window: timedelta = DEFAULT_REPLY_WINDOW,
) -> ContactMetrics:
    """Return counts, recency windows and response statistics.

    Interactions without a usable timestamp are skipped. The result does not
    depend on the order of ``interactions``.
    """
    thirty_days_ago = now - timedelta(days=30)
    ninety_days_ago = now - timedelta(days=90)

    total = 0
    sent = 0
    received = 0
    last_30 = 0
    last_90 = 0
    last_contact: datetime | None = None
    threads: set[ThreadKey] = set()
    skipped = 0

    for interaction in interactions:
        timestamp = interaction.timestamp
        if timestamp is None:
            skipped += 1
            continue
        total += 1
        if interaction.is_sent:
            sent += 1
        else:
            received += 1
        if timestamp >= thirty_days_ago:
            last_30 += 1
        if timestamp >= ninety_days_ago:
            last_90 += 1
        if last_contact is None or timestamp > last_contact:
            last_contact = timestamp
        threads.add(interaction.thread_key)

    if skipped:
        LOGGER.debug(
            "Ignored %d interaction(s) without a parseable timestamp", skipped
        )

    if last_contact is None:
        return ContactMetrics()

    stats = estimate_response_rate(interactions, reply_window=reply_window)
    return ContactMetrics(
        total_emails=total,
        sent_emails=sent,
        received_emails=received,
        emails_last_30_days=last_30,
        emails_last_90_days=last_90,
        days_since_last_contact=_days_between(last_contact, now),
        response_rate=stats.response_rate,
        average_response_time_hours=stats.average_response_time_hours,
        conversation_count=len(threads),
        last_contact_at=last_contact,
    )


def _days_between(earlier: datetime, now: datetime) -> int:
    # Future-dated interactions (clock skew) count as contact today.
    return max(0, math.floor((now - earlier) / _DAY))


__all__ = ["calculate_metrics"]
