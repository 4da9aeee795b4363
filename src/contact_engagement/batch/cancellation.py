"""Cooperative cancellation for long-running analyses."""

from __future__ import annotations

import threading

from contact_engagement.core.interfaces import AnalysisCancelled


class CancellationToken:
    """Thread-safe flag checked at chunk and group boundaries.

    A token created with a ``parent`` also reports cancellation when the
    parent is cancelled, while cancelling the child leaves the parent alone.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._reason: str | None = None
        self._parent = parent

    def cancel(self, reason: str | None = None) -> None:
        """Request that in-flight work stops at its next checkpoint."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str | None:
        if self._event.is_set():
            return self._reason
        return self._parent.reason if self._parent is not None else None

    def child(self) -> CancellationToken:
        """Return a token that follows this one but can be cancelled alone."""
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        """Raise :class:`AnalysisCancelled` once cancellation was requested."""
        if self.cancelled:
            raise AnalysisCancelled(self.reason or "Analysis cancelled")


__all__ = ["CancellationToken"]
