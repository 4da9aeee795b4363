"""Weighted multi-stage progress and ETA estimation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping

from contact_engagement.core.config import ProgressSettings
from contact_engagement.core.models import ProgressUpdate

LOGGER = logging.getLogger(__name__)

PREPARING_STAGE = "preparing_analysis"
ANALYZING_STAGE = "analyzing_contacts"
FINALIZING_STAGE = "finalizing_results"
COMPLETE_STAGE = "complete"
ERROR_STAGE = "error"
CANCELLED_STAGE = "cancelled"

ERROR_PROGRESS = -1

ProgressCallback = Callable[[ProgressUpdate], None]
CompleteCallback = Callable[[], None]
ErrorCallback = Callable[[BaseException], None]


def stage_weights(settings: ProgressSettings) -> dict[str, float]:
    """Map each stage name to its share of the whole run."""
    return {
        PREPARING_STAGE: settings.preparing_weight,
        ANALYZING_STAGE: settings.analyzing_weight,
        FINALIZING_STAGE: settings.finalizing_weight,
    }


class ProgressTracker:
    """Turn per-stage item counts into one overall percentage with an ETA.

    Entering a stage is detected by comparing the reported stage name with
    the current one, so repeated intra-stage updates never re-trigger the
    stage bookkeeping. Reported progress never decreases. ``complete`` and
    ``error`` are terminal; later updates are ignored.
    """

    def __init__(
        self,
        settings: ProgressSettings | None = None,
        *,
        weights: Mapping[str, float] | None = None,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._weights = dict(
            weights
            if weights is not None
            else stage_weights(settings or ProgressSettings())
        )
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_error = on_error
        self._clock = clock

        self._started_at: float | None = None
        self._current_stage = ""
        self._completed_stages: list[str] = []
        self._progress = 0
        self._items_processed = 0
        self._total_items = 0
        self._terminal_stage: str | None = None
        self._last_update: ProgressUpdate | None = None

    @property
    def stage(self) -> str:
        return self._terminal_stage or self._current_stage

    @property
    def progress(self) -> int:
        return ERROR_PROGRESS if self._terminal_stage == ERROR_STAGE else self._progress

    @property
    def finished(self) -> bool:
        return self._terminal_stage is not None

    @property
    def last_update(self) -> ProgressUpdate | None:
        return self._last_update

    def start(
        self, stage: str = PREPARING_STAGE, message: str | None = None
    ) -> ProgressUpdate:
        """Reset the tracker and report 0% for the first stage."""
        self._started_at = self._clock()
        self._current_stage = stage
        self._completed_stages = []
        self._progress = 0
        self._items_processed = 0
        self._total_items = 0
        self._terminal_stage = None
        return self._emit(stage, 0, message or f"Starting {stage}...", None, 0, 0)

    def update(
        self,
        stage: str,
        items_processed: int,
        total_items: int,
        message: str | None = None,
    ) -> ProgressUpdate | None:
        """Report intra-stage progress, entering ``stage`` if it is new."""
        if self._terminal_stage is not None:
            LOGGER.debug(
                "Ignoring progress for %s after %s", stage, self._terminal_stage
            )
            return None
        if self._started_at is None:
            self._started_at = self._clock()
            self._current_stage = stage
        elif stage != self._current_stage:
            previous = self._current_stage
            if previous and previous not in self._completed_stages:
                self._completed_stages.append(previous)
            LOGGER.debug(
                "Entering stage %s (completed: %s)",
                stage,
                ", ".join(self._completed_stages) or "none",
            )
            self._current_stage = stage

        fraction = min(1.0, items_processed / total_items) if total_items > 0 else 0.0
        completed_weight = sum(
            self._weights.get(name, 0.0) for name in self._completed_stages
        )
        overall = (completed_weight + self._weights.get(stage, 0.0) * fraction) * 100
        self._progress = max(self._progress, min(100, int(round(overall))))
        self._items_processed = items_processed
        self._total_items = total_items

        return self._emit(
            stage,
            self._progress,
            message or f"{stage}: {items_processed}/{total_items}",
            self._estimate_remaining(self._progress),
            items_processed,
            total_items,
        )

    def complete(self, message: str | None = None) -> ProgressUpdate | None:
        """Force progress to 100% and notify the completion listener."""
        if self._terminal_stage is not None:
            return None
        elapsed = self._elapsed()
        self._terminal_stage = COMPLETE_STAGE
        self._progress = 100
        update = self._emit(
            COMPLETE_STAGE,
            100,
            message or f"Analysis completed in {round(elapsed)}s",
            None,
            self._items_processed,
            self._total_items,
        )
        if self._on_complete is not None:
            self._on_complete()
        return update

    def error(
        self, error: BaseException, message: str | None = None
    ) -> ProgressUpdate | None:
        """Report a failure and notify the error listener once."""
        if self._terminal_stage is not None:
            return None
        self._terminal_stage = ERROR_STAGE
        update = self._emit(
            ERROR_STAGE,
            ERROR_PROGRESS,
            message or f"Error: {error}",
            None,
            self._items_processed,
            self._total_items,
        )
        if self._on_error is not None:
            self._on_error(error)
        return update

    def cancel(self, message: str | None = None) -> ProgressUpdate | None:
        """Report that the run was stopped, keeping the last progress value."""
        if self._terminal_stage is not None:
            return None
        self._terminal_stage = CANCELLED_STAGE
        return self._emit(
            CANCELLED_STAGE,
            self._progress,
            message or "Analysis cancelled",
            None,
            self._items_processed,
            self._total_items,
        )

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def _estimate_remaining(self, progress: float) -> int | None:
        if progress <= 0:
            return None
        elapsed = self._elapsed()
        return max(0, round(elapsed / progress * (100 - progress)))

    def _emit(
        self,
        stage: str,
        progress: int,
        message: str,
        eta_seconds: int | None,
        items_processed: int,
        total_items: int,
    ) -> ProgressUpdate:
        update = ProgressUpdate(
            stage=stage,
            progress=progress,
            message=message,
            items_processed=items_processed,
            total_items=total_items,
            eta_seconds=eta_seconds,
        )
        self._last_update = update
        if self._on_progress is not None:
            self._on_progress(update)
        return update


__all__ = [
    "ANALYZING_STAGE",
    "CANCELLED_STAGE",
    "COMPLETE_STAGE",
    "ERROR_PROGRESS",
    "ERROR_STAGE",
    "FINALIZING_STAGE",
    "PREPARING_STAGE",
    "ProgressTracker",
    "stage_weights",
]
