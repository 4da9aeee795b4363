"""Core domain models used across the application."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ContactCategory(str, Enum):
    """Engagement category assigned to a contact."""

    RECENT = "recent"
    IN_TOUCH = "in_touch"
    INACTIVE = "inactive"


CATEGORY_PRIORITY: dict[ContactCategory, int] = {
    ContactCategory.RECENT: 0,
    ContactCategory.IN_TOUCH: 1,
    ContactCategory.INACTIVE: 2,
}


class ImplicitThread(Enum):
    """Grouping key for interactions that carry no thread id."""

    GLOBAL = "global"

    def __repr__(self) -> str:
        return "IMPLICIT_THREAD"


IMPLICIT_THREAD = ImplicitThread.GLOBAL

ThreadKey = str | ImplicitThread

SENT = "sent"
RECEIVED = "received"


@dataclass(frozen=True, slots=True)
class Contact:
    """Opaque contact identity supplied by the mail collaborator."""

    id: str
    name: str
    email: str


@dataclass(frozen=True, slots=True)
class EmailInteraction:
    """One directed email event between the user and a contact.

    ``timestamp`` is ``None`` when the source record carried no parseable
    date; such interactions are excluded from every metric.
    """

    id: str
    contact_id: str
    subject: str
    timestamp: datetime | None
    direction: str
    thread_id: str | None = None

    @property
    def thread_key(self) -> ThreadKey:
        """Return the thread id, or the implicit per-contact thread."""
        return self.thread_id if self.thread_id else IMPLICIT_THREAD

    @property
    def is_sent(self) -> bool:
        return self.direction == SENT


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class ContactMetrics:
    """Counts and recency windows derived from a contact's history."""

    total_emails: int = 0
    sent_emails: int = 0
    received_emails: int = 0
    emails_last_30_days: int = 0
    emails_last_90_days: int = 0
    days_since_last_contact: float = math.inf
    response_rate: float = 0.0
    average_response_time_hours: float = 0.0
    conversation_count: int = 0
    last_contact_at: datetime | None = None

    @property
    def never_contacted(self) -> bool:
        return math.isinf(self.days_since_last_contact)


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Category, confidence, and supporting metrics for one contact."""

    contact_id: str
    category: ContactCategory
    confidence_score: int
    metrics: ContactMetrics
    insights: tuple[str, ...]
    analyzed_at: datetime
    tags: tuple[str, ...] = ()
    segments: tuple[str, ...] = ()
    contact: Contact | None = None

    @property
    def response_rate(self) -> float:
        return self.metrics.response_rate


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """Snapshot of a run's progress as seen by listeners."""

    stage: str
    progress: int
    message: str
    items_processed: int
    total_items: int
    eta_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class AnalysisSummary:
    """Aggregate statistics over a set of analysis results."""

    total: int
    counts: dict[ContactCategory, int] = field(default_factory=dict)
    average_response_rate: float = 0.0
    average_confidence_score: float = 0.0

    @property
    def recent(self) -> int:
        return self.counts.get(ContactCategory.RECENT, 0)

    @property
    def in_touch(self) -> int:
        return self.counts.get(ContactCategory.IN_TOUCH, 0)

    @property
    def inactive(self) -> int:
        return self.counts.get(ContactCategory.INACTIVE, 0)


__all__ = [
    "AnalysisResult",
    "AnalysisSummary",
    "CATEGORY_PRIORITY",
    "Contact",
    "ContactCategory",
    "ContactMetrics",
    "EmailInteraction",
    "IMPLICIT_THREAD",
    "ImplicitThread",
    "ProgressUpdate",
    "RECEIVED",
    "SENT",
    "ThreadKey",
]
