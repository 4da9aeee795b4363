"""Segment tags for internal-staff and partner contacts."""

from __future__ import annotations

import logging

from contact_engagement.core.config import SegmentationSettings
from contact_engagement.core.interfaces import SegmentationProvider
from contact_engagement.core.models import Contact

LOGGER = logging.getLogger(__name__)

INTERNAL_SEGMENT = "internal"
PARTNER_SEGMENT = "partner"


class DomainSegmentation(SegmentationProvider):
    """Tag contacts whose address or domain appears in configured lists."""

    def __init__(self, settings: SegmentationSettings) -> None:
        self._internal_domains = frozenset(settings.internal_domains)
        self._partner_emails = frozenset(settings.partner_emails)
        self._partner_domains = frozenset(settings.partner_domains)

    @property
    def enabled(self) -> bool:
        return bool(
            self._internal_domains or self._partner_emails or self._partner_domains
        )

    def segments_for(self, contact: Contact) -> tuple[str, ...]:
        """Return the segment tags for a contact in a stable order."""
        address = (contact.email or "").strip().lower()
        domain = address.rpartition("@")[2] if "@" in address else ""
        segments: list[str] = []
        if domain and domain in self._internal_domains:
            segments.append(INTERNAL_SEGMENT)
        if address in self._partner_emails:
            LOGGER.debug("Partner match for %s (address)", address)
            segments.append(PARTNER_SEGMENT)
        elif domain and domain in self._partner_domains:
            LOGGER.debug("Partner match for %s (domain)", address)
            segments.append(PARTNER_SEGMENT)
        return tuple(segments)


__all__ = ["DomainSegmentation", "INTERNAL_SEGMENT", "PARTNER_SEGMENT"]
