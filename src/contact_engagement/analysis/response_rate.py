"""Thread-aware matching of sent messages to their first reply."""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from contact_engagement.core.models import EmailInteraction, ThreadKey

DEFAULT_REPLY_WINDOW = timedelta(days=14)
_SECONDS_PER_HOUR = 3600.0


@dataclass(slots=True)
class _ThreadTimeline:
    sent: list[datetime] = field(default_factory=list)
    received: list[datetime] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ResponseStats:
    """Response rate and latency derived from reply matching."""

    response_rate: float
    average_response_time_hours: float
    replied_count: int
    sent_count: int


def group_by_thread(
    interactions: Iterable[EmailInteraction],
) -> dict[ThreadKey, _ThreadTimeline]:
    """Bucket timestamps per thread, each list sorted ascending once."""
    threads: dict[ThreadKey, _ThreadTimeline] = {}
    for interaction in interactions:
        if interaction.timestamp is None:
            continue
        timeline = threads.get(interaction.thread_key)
        if timeline is None:
            timeline = threads[interaction.thread_key] = _ThreadTimeline()
        if interaction.is_sent:
            timeline.sent.append(interaction.timestamp)
        else:
            timeline.received.append(interaction.timestamp)

    for timeline in threads.values():
        timeline.sent.sort()
        timeline.received.sort()
    return threads


def estimate_response_rate(
    interactions: Iterable[EmailInteraction],
    *,
    reply_window: timedelta = DEFAULT_REPLY_WINDOW,
) -> ResponseStats:
    """Match each sent message to the first later reply in its thread.

    A sent message counts as replied when a received message in the same
    thread follows it strictly later and within ``reply_window``. Threads
    holding only received messages do not contribute to the denominator.
    """
    sent_count = 0
    replied_count = 0
    latencies: list[float] = []

    for timeline in group_by_thread(interactions).values():
        sent_count += len(timeline.sent)
        if not timeline.received:
            continue
        for sent_at in timeline.sent:
            index = bisect_right(timeline.received, sent_at)
            if index >= len(timeline.received):
                continue
            delay = timeline.received[index] - sent_at
            if delay < reply_window:
                replied_count += 1
                latencies.append(delay.total_seconds() / _SECONDS_PER_HOUR)

    response_rate = replied_count / sent_count if sent_count else 0.0
    average_hours = sum(latencies) / len(latencies) if latencies else 0.0
    return ResponseStats(
        response_rate=response_rate,
        average_response_time_hours=average_hours,
        replied_count=replied_count,
        sent_count=sent_count,
    )


__all__ = [
    "DEFAULT_REPLY_WINDOW",
    "ResponseStats",
    "estimate_response_rate",
    "group_by_thread",
]
