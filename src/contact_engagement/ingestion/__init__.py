"""Ingestion of collaborator records."""

from .parser import (
    AnalysisPayload,
    ContactRecord,
    InteractionParser,
    InteractionRecord,
    JsonInteractionSource,
)

__all__ = [
    "AnalysisPayload",
    "ContactRecord",
    "InteractionParser",
    "InteractionRecord",
    "JsonInteractionSource",
]
