"""Per-contact metrics, categorisation and scoring."""

from .analyzer import ContactAnalyzer
from .cache import AnalysisCache
from .category import Categorizer, categorize
from .confidence import score_confidence
from .metrics import calculate_metrics
from .response_rate import ResponseStats, estimate_response_rate
from .service import (
    ContactAnalysisService,
    group_interactions_by_contact,
    needing_attention,
    sort_results,
    summarize,
)

__all__ = [
    "AnalysisCache",
    "Categorizer",
    "ContactAnalysisService",
    "ContactAnalyzer",
    "ResponseStats",
    "calculate_metrics",
    "categorize",
    "estimate_response_rate",
    "group_interactions_by_contact",
    "needing_attention",
    "score_confidence",
    "sort_results",
    "summarize",
]
