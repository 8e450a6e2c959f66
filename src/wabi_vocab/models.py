from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, NotRequired, TypedDict

DEFAULT_EASE = 2.5
DEFAULT_INTERVAL = 1
DEFAULT_REPETITIONS = 0


class Stage(str, Enum):
    """Retention stage of a card."""
    NEW = "new"
    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"


class Rating(IntEnum):
    """Learner's answer quality, ordered from worst to best."""
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class CardRecord(TypedDict):
    id: str
    listId: str
    english: NotRequired[str]
    partOfSpeech: NotRequired[str]
    chinese: NotRequired[str]
    stage: NotRequired[str]
    easeFactor: NotRequired[float]
    interval: NotRequired[int]
    repetitions: NotRequired[int]
    nextReviewDate: NotRequired[str | None]
    lastReviewDate: NotRequired[str | None]
    totalReviews: NotRequired[int]
    isDifficult: NotRequired[bool]
    lastRating: NotRequired[int | None]


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def require_aware(value: datetime) -> datetime:
    """Return ``value`` unchanged; calendar-day maths needs an explicit zone.

    Naive datetimes are read as UTC everywhere else, which would shift the
    local day boundary by the host's UTC offset.
    """
    if value.tzinfo is None:
        raise ValueError(f"Expected a timezone-aware datetime, got naive {value!r}")
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat()


def parse_datetime(value: Any) -> datetime | None:
    """Coerce an ISO string, epoch milliseconds or datetime into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as produced by Date.getTime()
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        return as_utc(datetime.fromisoformat(value.strip()))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


@dataclass(slots=True)
class Card:
    id: str
    list_id: str
    english: str = ""
    part_of_speech: str = ""
    chinese: str = ""
    stage: Stage = Stage.NEW
    ease_factor: float = DEFAULT_EASE
    interval: int = DEFAULT_INTERVAL
    repetitions: int = DEFAULT_REPETITIONS
    next_review_date: datetime | None = None
    last_review_date: datetime | None = None
    total_reviews: int = 0
    is_difficult: bool = False
    last_rating: Rating | None = None

    def to_dict(self) -> CardRecord:
        return {
            "id": self.id,
            "listId": self.list_id,
            "english": self.english,
            "partOfSpeech": self.part_of_speech,
            "chinese": self.chinese,
            "stage": self.stage.value,
            "easeFactor": self.ease_factor,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "nextReviewDate": to_iso(self.next_review_date),
            "lastReviewDate": to_iso(self.last_review_date),
            "totalReviews": self.total_reviews,
            "isDifficult": self.is_difficult,
            "lastRating": int(self.last_rating) if self.last_rating is not None else None,
        }


@dataclass(slots=True)
class DeckStatistics:
    total: int = 0
    new: int = 0
    learning: int = 0
    reviewing: int = 0
    mastered: int = 0
    due_today: int = 0
    average_ease_factor: float = DEFAULT_EASE
    total_reviews: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "new": self.new,
            "learning": self.learning,
            "reviewing": self.reviewing,
            "mastered": self.mastered,
            "dueToday": self.due_today,
            "averageEaseFactor": self.average_ease_factor,
            "totalReviews": self.total_reviews,
        }


@dataclass(slots=True)
class ProgressForecast:
    days_to_finish_new_cards: int
    estimated_days_to_mastery: int
    projected_mastered_words: int
    recommended_daily_study_time: int

    def to_dict(self) -> dict[str, int]:
        return {
            "daysToFinishNewCards": self.days_to_finish_new_cards,
            "estimatedDaysToMastery": self.estimated_days_to_mastery,
            "projectedMasteredWords": self.projected_mastered_words,
            "recommendedDailyStudyTime": self.recommended_daily_study_time,
        }


@dataclass(slots=True)
class VocabList:
    id: str
    display_name: str
    csv_file: str
    description: str = ""
    total_words: int = 0
    level: str = "Unknown"
    color: str = "#8B7355"
    icon: str = "\U0001f4dd"
    is_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "description": self.description,
            "csvFile": self.csv_file,
            "totalWords": self.total_words,
            "level": self.level,
            "color": self.color,
            "icon": self.icon,
            "isDefault": self.is_default,
        }


@dataclass(slots=True)
class CsvValidation:
    valid: bool
    error: str | None = None


__all__ = [
    "Card",
    "CardRecord",
    "CsvValidation",
    "DEFAULT_EASE",
    "DEFAULT_INTERVAL",
    "DEFAULT_REPETITIONS",
    "DeckStatistics",
    "ProgressForecast",
    "Rating",
    "Stage",
    "VocabList",
    "as_utc",
    "parse_datetime",
    "require_aware",
    "to_iso",
    "utc_now",
]
