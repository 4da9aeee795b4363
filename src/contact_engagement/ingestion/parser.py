"""Convert raw collaborator records into immutable domain objects."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from contact_engagement.core.datetime_utils import coerce_timestamp
from contact_engagement.core.interfaces import InteractionSource, PayloadError
from contact_engagement.core.models import Contact, EmailInteraction

LOGGER = logging.getLogger(__name__)


class ContactRecord(BaseModel):
    """Contact as delivered by the mail collaborator."""

    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, coerce_numbers_to_str=True
    )

    id: str = Field(min_length=1)
    name: str = ""
    email: str = ""


class InteractionRecord(BaseModel):
    """Interaction as delivered by the mail collaborator.

    The timestamp is kept raw so unparseable values can be excluded from
    metrics instead of rejecting the whole payload.
    """

    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, coerce_numbers_to_str=True
    )

    id: str = ""
    contact_id: str = Field(
        min_length=1, validation_alias=AliasChoices("contact_id", "contactId")
    )
    subject: str | None = None
    timestamp: Any = Field(
        default=None, validation_alias=AliasChoices("timestamp", "date")
    )
    direction: Literal["sent", "received"]
    thread_id: str | None = Field(
        default=None, validation_alias=AliasChoices("thread_id", "threadId")
    )


class AnalysisPayload(BaseModel):
    """Contacts and interactions submitted together for analysis."""

    contacts: list[ContactRecord] = Field(default_factory=list)
    interactions: list[InteractionRecord] = Field(default_factory=list)


class InteractionParser:
    """Build :class:`Contact` and :class:`EmailInteraction` instances."""

    def parse_contacts(self, records: Iterable[Mapping[str, Any]]) -> list[Contact]:
        """Validate raw contact mappings."""
        return [self.to_contact(_validate(ContactRecord, raw)) for raw in records]

    def parse_interactions(
        self, records: Iterable[Mapping[str, Any]]
    ) -> list[EmailInteraction]:
        """Validate raw interaction mappings; bad timestamps become ``None``."""
        return [
            self.to_interaction(_validate(InteractionRecord, raw)) for raw in records
        ]

    def parse_payload(
        self, payload: AnalysisPayload
    ) -> tuple[list[Contact], list[EmailInteraction]]:
        """Convert a validated payload into domain objects."""
        contacts = [self.to_contact(record) for record in payload.contacts]
        interactions = [self.to_interaction(record) for record in payload.interactions]
        return contacts, interactions

    @staticmethod
    def to_contact(record: ContactRecord) -> Contact:
        return Contact(id=record.id, name=record.name, email=record.email)

    @staticmethod
    def to_interaction(record: InteractionRecord) -> EmailInteraction:
        timestamp = coerce_timestamp(record.timestamp)
        if timestamp is None:
            LOGGER.warning(
                "Interaction %s for contact %s has no parseable timestamp (%r)",
                record.id or "<unknown>",
                record.contact_id,
                record.timestamp,
            )
        return EmailInteraction(
            id=record.id,
            contact_id=record.contact_id,
            subject=record.subject or "",
            timestamp=timestamp,
            direction=record.direction,
            thread_id=record.thread_id or None,
        )


class JsonInteractionSource(InteractionSource):
    """Read contacts and interactions from a JSON export on disk."""

    def __init__(
        self, path: Path | str, parser: InteractionParser | None = None
    ) -> None:
        self._path = Path(path)
        self._parser = parser or InteractionParser()
        self._contacts: list[Contact] | None = None
        self._interactions: list[EmailInteraction] | None = None

    def get_contacts(self) -> Sequence[Contact]:
        self._load()
        return list(self._contacts or ())

    def get_interactions(self, limit: int | None = None) -> Sequence[EmailInteraction]:
        self._load()
        interactions = list(self._interactions or ())
        return interactions if limit is None else interactions[:limit]

    def _load(self) -> None:
        if self._contacts is not None:
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            payload = AnalysisPayload.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise PayloadError(f"Cannot read payload {self._path}: {exc}") from exc
        self._contacts, self._interactions = self._parser.parse_payload(payload)
        LOGGER.info(
            "Loaded %d contacts and %d interactions from %s",
            len(self._contacts),
            len(self._interactions),
            self._path,
        )


def _validate(model: type[BaseModel], raw: Mapping[str, Any]) -> Any:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise PayloadError(f"Invalid {model.__name__}: {exc}") from exc


__all__ = [
    "AnalysisPayload",
    "ContactRecord",
    "InteractionParser",
    "InteractionRecord",
    "JsonInteractionSource",
]
