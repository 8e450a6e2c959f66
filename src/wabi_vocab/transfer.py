"""Bulk export/import of card collections as JSON-ready payloads."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from .errors import ValidationError
from .models import Card, as_utc, to_iso, utc_now
from .srs import get_statistics, normalize_card

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_NOTE = "Generated by Wabi-Sabi Vocabulary Learning System"


def export_data(cards: Iterable[Card], *, now: datetime | None = None) -> dict[str, Any]:
    """Wrap ``cards`` with a version tag, export timestamp and deck statistics."""
    snapshot = list(cards)
    moment = as_utc(now or utc_now())
    return {
        "exportDate": to_iso(moment),
        "version": EXPORT_VERSION,
        "statistics": get_statistics(snapshot, now=moment).to_dict(),
        "cards": [{**card.to_dict(), "exportNote": EXPORT_NOTE} for card in snapshot],
    }


def import_data(payload: Any) -> list[Card]:
    """Validate an export payload and return normalised cards.

    Raises :class:`ValidationError` if ``payload`` has no ``cards`` list or any
    entry is not an object with readable timestamps. Nothing is returned on
    failure, so callers never persist a partial import.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid import data format: expected an object")
    records = payload.get("cards")
    if not isinstance(records, Sequence) or isinstance(records, (str, bytes)):
        raise ValidationError("Invalid import data format: 'cards' must be a list")

    cards: list[Card] = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise ValidationError(f"Invalid card at position {index}: expected an object")
        try:
            cards.append(normalize_card(record))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid card at position {index}: {exc}") from exc

    logger.debug("Imported %d cards (version %s)", len(cards), payload.get("version", "unknown"))
    return cards


__all__ = [
    "EXPORT_NOTE",
    "EXPORT_VERSION",
    "export_data",
    "import_data",
]
