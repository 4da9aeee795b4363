"""FastAPI application exposing contact engagement analysis."""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from typing import Any

from fastapi import FastAPI, HTTPException, Query, status as http_status
from pydantic import Field

from contact_engagement.analysis.cache import AnalysisCache
from contact_engagement.analysis.service import summarize
from contact_engagement.batch import (
    BatchCoordinator,
    BatchOptions,
    estimated_analysis_seconds,
    recommended_batch_size,
)
from contact_engagement.core import AppSettings, load_app_settings
from contact_engagement.core.datetime_utils import serialize_datetime
from contact_engagement.core.interfaces import BatchAnalysisError
from contact_engagement.core.models import (
    AnalysisResult,
    AnalysisSummary,
    ContactMetrics,
    ProgressUpdate,
)
from contact_engagement.ingestion import AnalysisPayload, InteractionParser
from contact_engagement.segmentation import DomainSegmentation

LOGGER = logging.getLogger(__name__)

IDLE_STAGE = "idle"


class AnalysisRequest(AnalysisPayload):
    """Payload for ``POST /api/analysis``."""

    batch_size: int | None = Field(default=None, ge=1)
    max_concurrent_batches: int | None = Field(default=None, ge=1)


class ProgressBoard:
    """Latest progress event of the running analysis, readable from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: ProgressUpdate | None = None

    def publish(self, update: ProgressUpdate) -> None:
        with self._lock:
            self._latest = update

    def latest(self) -> ProgressUpdate | None:
        with self._lock:
            return self._latest


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    app = FastAPI(title="Contact Engagement Analysis")

    segmentation = DomainSegmentation(app_settings.segmentation)
    coordinator = BatchCoordinator(
        settings=app_settings,
        segmentation=segmentation if segmentation.enabled else None,
    )
    parser = InteractionParser()
    cache = AnalysisCache()
    board = ProgressBoard()
    run_lock = asyncio.Lock()

    app.state.analysis_cache = cache
    app.state.progress_board = board

    @app.post("/api/analysis")
    async def analyze(request: AnalysisRequest) -> dict[str, Any]:
        if run_lock.locked():
            raise HTTPException(
                status_code=http_status.HTTP_409_CONFLICT,
                detail="An analysis is already running.",
            )
        async with run_lock:
            contacts, interactions = parser.parse_payload(request)
            options = BatchOptions(
                batch_size=request.batch_size,
                max_concurrent_batches=request.max_concurrent_batches,
                on_progress=board.publish,
            )
            try:
                results = await asyncio.to_thread(
                    coordinator.analyze_all,
                    contacts,
                    interactions,
                    options,
                    cache=cache,
                )
            except BatchAnalysisError as exc:
                LOGGER.exception("Analysis request failed")
                raise HTTPException(
                    status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=str(exc),
                ) from exc

        return {
            "summary": _serialize_summary(summarize(results)),
            "results": [_serialize_result(result) for result in results],
        }

    @app.get("/api/analysis/progress")
    async def progress() -> dict[str, Any]:
        latest = board.latest()
        if latest is None:
            return {
                "stage": IDLE_STAGE,
                "progress": 0,
                "message": "No analysis has run yet",
                "eta_seconds": None,
                "items_processed": 0,
                "total_items": 0,
            }
        return _serialize_progress(latest)

    @app.get("/api/analysis/recommendations")
    async def recommendations(
        contacts: int = Query(..., ge=0),  # noqa: B008
    ) -> dict[str, int]:
        return {
            "contacts": contacts,
            "batch_size": recommended_batch_size(contacts),
            "max_concurrent_batches": coordinator.recommended_concurrency(contacts),
            "estimated_seconds": estimated_analysis_seconds(contacts),
        }

    @app.delete("/api/analysis/cache")
    async def clear_cache() -> dict[str, int]:
        return {"invalidated": cache.invalidate()}

    @app.get("/api/analysis/{contact_id}")
    async def cached_result(contact_id: str) -> dict[str, Any]:
        result = cache.get(contact_id)
        if result is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail=f"No cached analysis for contact {contact_id}",
            )
        return _serialize_result(result)

    return app


def _serialize_metrics(metrics: ContactMetrics) -> dict[str, Any]:
    days = metrics.days_since_last_contact
    return {
        "total_emails": metrics.total_emails,
        "sent_emails": metrics.sent_emails,
        "received_emails": metrics.received_emails,
        "emails_last_30_days": metrics.emails_last_30_days,
        "emails_last_90_days": metrics.emails_last_90_days,
        "days_since_last_contact": None if math.isinf(days) else int(days),
        "never_contacted": metrics.never_contacted,
        "response_rate": metrics.response_rate,
        "average_response_time_hours": metrics.average_response_time_hours,
        "conversation_count": metrics.conversation_count,
        "last_contact_at": serialize_datetime(metrics.last_contact_at),
    }


def _serialize_result(result: AnalysisResult) -> dict[str, Any]:
    contact = result.contact
    return {
        "contact_id": result.contact_id,
        "name": contact.name if contact else None,
        "email": contact.email if contact else None,
        "category": result.category.value,
        "confidence_score": result.confidence_score,
        "metrics": _serialize_metrics(result.metrics),
        "insights": list(result.insights),
        "tags": list(result.tags),
        "segments": list(result.segments),
        "analyzed_at": serialize_datetime(result.analyzed_at),
    }


def _serialize_summary(summary: AnalysisSummary) -> dict[str, Any]:
    return {
        "total": summary.total,
        "recent": summary.recent,
        "in_touch": summary.in_touch,
        "inactive": summary.inactive,
        "average_response_rate": summary.average_response_rate,
        "average_confidence_score": summary.average_confidence_score,
    }


def _serialize_progress(update: ProgressUpdate) -> dict[str, Any]:
    return {
        "stage": update.stage,
        "progress": update.progress,
        "message": update.message,
        "eta_seconds": update.eta_seconds,
        "items_processed": update.items_processed,
        "total_items": update.total_items,
    }


__all__ = ["AnalysisRequest", "ProgressBoard", "create_app"]
