"""Batched, concurrent analysis with weighted progress reporting."""

from .cancellation import CancellationToken
from .coordinator import (
    BatchCoordinator,
    BatchOptions,
    estimated_analysis_seconds,
    recommended_batch_size,
    recommended_chunk_size,
    recommended_concurrency,
)
from .progress import (
    ANALYZING_STAGE,
    CANCELLED_STAGE,
    COMPLETE_STAGE,
    ERROR_STAGE,
    FINALIZING_STAGE,
    PREPARING_STAGE,
    ProgressTracker,
)
from .worker import BatchJob, run_batch

__all__ = [
    "ANALYZING_STAGE",
    "BatchCoordinator",
    "BatchJob",
    "BatchOptions",
    "CANCELLED_STAGE",
    "COMPLETE_STAGE",
    "CancellationToken",
    "ERROR_STAGE",
    "FINALIZING_STAGE",
    "PREPARING_STAGE",
    "ProgressTracker",
    "estimated_analysis_seconds",
    "recommended_batch_size",
    "recommended_chunk_size",
    "recommended_concurrency",
    "run_batch",
]
