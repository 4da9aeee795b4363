"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator, model_validator


def _split_csv(value: Any) -> Any:
    """Accept comma separated strings for tuple-valued settings."""
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split(","))
    return value


class CategoryThresholds(BaseModel):
    """Policy table used to assign engagement categories."""

    recent_max_days: int = Field(
        default=30, ge=0, description="Days since last contact still counted recent"
    )
    recent_min_emails_30_days: int = Field(
        default=2, ge=0, description="Emails in the last 30 days that imply recent"
    )
    recent_min_emails_90_days: int = Field(
        default=5, ge=0, description="Emails in the last 90 days for the recent rule"
    )
    recent_min_response_rate: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Response rate paired with the 90-day recent rule",
    )
    in_touch_min_emails: int = Field(
        default=3, ge=0, description="Minimum history for the in-touch category"
    )
    in_touch_min_response_rate: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Minimum in-touch response rate"
    )
    in_touch_max_days: int = Field(
        default=120, ge=0, description="Days since last contact still in touch"
    )


class AnalysisSettings(BaseModel):
    """Settings for per-contact analysis."""

    reply_window_days: float = Field(
        default=14,
        gt=0,
        description="A received message counts as a reply only inside this window",
    )
    thresholds: CategoryThresholds = Field(default_factory=CategoryThresholds)


class BatchSettings(BaseModel):
    """Settings controlling batch sizing and concurrency."""

    batch_size: int | None = Field(
        default=None, ge=1, description="Contacts per batch; derived when unset"
    )
    max_concurrent_batches: int | None = Field(
        default=None, ge=1, description="Batches run per group; derived when unset"
    )
    chunk_size: int | None = Field(
        default=None, ge=1, description="Contacts per progress chunk inside a batch"
    )
    concurrency_ceiling: int = Field(
        default=6, ge=1, description="Upper bound for derived concurrency"
    )


class ProgressSettings(BaseModel):
    """Stage weights used for overall progress."""

    preparing_weight: float = Field(default=0.1, ge=0.0, le=1.0)
    analyzing_weight: float = Field(default=0.8, ge=0.0, le=1.0)
    finalizing_weight: float = Field(default=0.1, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> ProgressSettings:
        """Reject stage weights that do not add up to the whole run."""
        total = self.preparing_weight + self.analyzing_weight + self.finalizing_weight
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"Stage weights must sum to 1.0, got {total}")
        return self


class SegmentationSettings(BaseModel):
    """Lists identifying internal staff and partner contacts."""

    internal_domains: tuple[str, ...] = Field(
        default=(), description="Domains whose contacts are tagged internal"
    )
    partner_emails: tuple[str, ...] = Field(
        default=(), description="Addresses tagged as partner contacts"
    )
    partner_domains: tuple[str, ...] = Field(
        default=(), description="Domains tagged as partner contacts"
    )

    @field_validator(
        "internal_domains", "partner_emails", "partner_domains", mode="before"
    )
    @classmethod
    def normalize_lists(cls, value: Any) -> Any:
        """Lower-case entries and accept comma separated strings."""
        value = _split_csv(value)
        if isinstance(value, (list, tuple)):
            return tuple(
                str(item).strip().lower() for item in value if str(item).strip()
            )
        return value


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    segmentation: SegmentationSettings = Field(default_factory=SegmentationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "CONTACT_ENGAGEMENT_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AnalysisSettings",
    "AppSettings",
    "BatchSettings",
    "CategoryThresholds",
    "LoggingSettings",
    "ProgressSettings",
    "SegmentationSettings",
    "load_app_settings",
]
