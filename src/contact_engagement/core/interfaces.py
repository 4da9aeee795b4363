"""Protocol interfaces and errors shared by analysis components."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import Contact, EmailInteraction


class AnalysisError(RuntimeError):
    """Base error for contact analysis failures."""


class BatchAnalysisError(AnalysisError):
    """Raised when an execution unit fails and the run is aborted."""

    def __init__(self, message: str, *, batch_index: int | None = None) -> None:
        super().__init__(message)
        self.batch_index = batch_index


class AnalysisCancelled(AnalysisError):
    """Raised when a run is stopped through its cancellation token."""


class PayloadError(AnalysisError):
    """Raised when collaborator records cannot be turned into domain objects."""


class InteractionSource(Protocol):
    """Mail collaborator providing contacts and their interaction history."""

    def get_contacts(self) -> Sequence[Contact]:
        """Return the user's contact list."""
        raise NotImplementedError

    def get_interactions(self, limit: int | None = None) -> Sequence[EmailInteraction]:
        """Return up to ``limit`` interactions across all contacts."""
        raise NotImplementedError


class SegmentationProvider(Protocol):
    """Configuration collaborator supplying opaque segment tags."""

    def segments_for(self, contact: Contact) -> tuple[str, ...]:
        """Return the tags to attach verbatim to the contact's result."""
        raise NotImplementedError


__all__ = [
    "AnalysisCancelled",
    "AnalysisError",
    "BatchAnalysisError",
    "InteractionSource",
    "PayloadError",
    "SegmentationProvider",
]
