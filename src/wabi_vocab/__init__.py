"""Wabi-Sabi vocabulary trainer: SM-2 style scheduling for flashcard decks."""

from .errors import ConflictError, InvalidRatingError, NotFoundError, ValidationError, WabiVocabError
from .models import Card, DeckStatistics, ProgressForecast, Rating, Stage
from .srs import (
    apply_rating,
    get_difficult_cards,
    get_due_cards,
    get_new_cards,
    get_statistics,
    mark_difficult,
    normalize_card,
    predict_progress,
    schedule_from,
)
from .transfer import export_data, import_data

__all__ = [
    "Card",
    "ConflictError",
    "DeckStatistics",
    "InvalidRatingError",
    "NotFoundError",
    "ProgressForecast",
    "Rating",
    "Stage",
    "ValidationError",
    "WabiVocabError",
    "apply_rating",
    "export_data",
    "get_difficult_cards",
    "get_due_cards",
    "get_new_cards",
    "get_statistics",
    "import_data",
    "mark_difficult",
    "normalize_card",
    "predict_progress",
    "schedule_from",
]
