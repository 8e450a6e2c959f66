"""SM-2 variant scheduler: rating transitions plus read-only deck queries."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from .errors import InvalidRatingError
from .models import (
    DEFAULT_EASE,
    DEFAULT_INTERVAL,
    DEFAULT_REPETITIONS,
    Card,
    DeckStatistics,
    ProgressForecast,
    Rating,
    Stage,
    as_utc,
    parse_datetime,
    require_aware,
    utc_now,
)

logger = logging.getLogger(__name__)

MIN_EASE = 1.3
MAX_EASE = 3.0
EASE_STEP = 0.15
MIN_INTERVAL = 1

HARD_INTERVAL_FACTOR = 1.2
EASY_BONUS = 1.3
GOOD_FIRST_INTERVAL = 1
GOOD_SECOND_INTERVAL = 6
EASY_FIRST_INTERVAL = 4
EASY_SECOND_INTERVAL = 10
RELEARN_DELAY = timedelta(minutes=10)

JITTER_MIN = 0.9
JITTER_MAX = 1.1

REVIEWING_MIN_REPETITIONS = 3
MASTERED_MIN_INTERVAL = 30
MASTERED_MIN_REPETITIONS = 5

DIFFICULT_EASE_THRESHOLD = 2.0
DIFFICULT_REPETITIONS_THRESHOLD = 5

DEFAULT_NEW_CARD_LIMIT = 20
DEFAULT_DAILY_REVIEWS = 100
ASSUMED_RETENTION = 0.85
MASTERY_DAYS_FACTOR = 2.5


def _pick(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _coerce_stage(value: Any) -> Stage:
    if isinstance(value, Stage):
        return value
    if not value:
        return Stage.NEW
    try:
        return Stage(str(value).strip().lower())
    except ValueError:
        logger.debug("Unknown stage %r treated as new", value)
        return Stage.NEW


def _coerce_last_rating(value: Any) -> Rating | None:
    if not value:
        return None
    try:
        return Rating(int(value))
    except (TypeError, ValueError):
        logger.debug("Ignoring unusable last rating %r", value)
        return None


def coerce_rating(value: Rating | int) -> Rating:
    """Return ``value`` as a :class:`Rating` or raise :class:`InvalidRatingError`."""
    if isinstance(value, bool):
        raise InvalidRatingError(f"Rating must be an integer 1-4, got {value!r}")
    try:
        return Rating(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRatingError(f"Rating must be an integer 1-4, got {value!r}") from exc


def _bounded(card: Card) -> Card:
    interval = max(MIN_INTERVAL, card.interval)
    repetitions = max(DEFAULT_REPETITIONS, card.repetitions)
    total_reviews = max(0, card.total_reviews)
    if (interval, repetitions, total_reviews) == (card.interval, card.repetitions, card.total_reviews):
        return card
    logger.debug("Card %s had out-of-range counters; clamped", card.id)
    return replace(card, interval=interval, repetitions=repetitions, total_reviews=total_reviews)


def normalize_card(record: Card | Mapping[str, Any]) -> Card:
    """Materialise a fully populated :class:`Card` from a possibly partial record.

    Accepts the camelCase wire shape or snake_case keys. Missing or falsy
    scheduling fields fall back to the new-card defaults, and negative counters
    are raised to their floor; nothing here is an error apart from timestamps
    that cannot be parsed.
    """
    if isinstance(record, Card):
        return _bounded(record)

    ease = _pick(record, "easeFactor", "ease_factor")
    interval = _pick(record, "interval")
    repetitions = _pick(record, "repetitions")
    return _bounded(
        Card(
            id=str(_pick(record, "id") or ""),
            list_id=str(_pick(record, "listId", "list_id") or ""),
            english=str(_pick(record, "english") or ""),
            part_of_speech=str(_pick(record, "partOfSpeech", "part_of_speech") or ""),
            chinese=str(_pick(record, "chinese") or ""),
            stage=_coerce_stage(_pick(record, "stage")),
            ease_factor=float(ease) if ease else DEFAULT_EASE,
            interval=int(interval) if interval else DEFAULT_INTERVAL,
            repetitions=int(repetitions) if repetitions else DEFAULT_REPETITIONS,
            next_review_date=parse_datetime(_pick(record, "nextReviewDate", "next_review_date")),
            last_review_date=parse_datetime(_pick(record, "lastReviewDate", "last_review_date")),
            total_reviews=int(_pick(record, "totalReviews", "total_reviews") or 0),
            is_difficult=bool(_pick(record, "isDifficult", "is_difficult")),
            last_rating=_coerce_last_rating(_pick(record, "lastRating", "last_rating")),
        )
    )


def schedule_from(
    base: datetime,
    interval_days: int,
    *,
    rng: random.Random | None = None,
) -> datetime:
    """Return ``base`` plus ``interval_days`` jittered by a uniform factor in [0.9, 1.1].

    The jitter keeps cards rated together from all landing on the same day.
    """
    if rng is not None:
        factor = rng.uniform(JITTER_MIN, JITTER_MAX)
    else:
        factor = random.uniform(JITTER_MIN, JITTER_MAX)
    return base + timedelta(hours=interval_days * 24 * factor)


def _clamp_ease(ease: float) -> float:
    return min(MAX_EASE, max(MIN_EASE, ease))


def apply_rating(
    card: Card | Mapping[str, Any],
    rating: Rating | int,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> Card:
    """Apply one review to ``card`` and return the updated copy.

    Again resets the card and brings it back in ten minutes. Hard shrinks the
    ease factor and grows the interval by 20%. Good and Easy follow the SM-2
    warm-up (1/6 days and 4/10 days) before growing multiplicatively, Easy
    also raising the ease factor and applying a bonus.
    """
    grade = coerce_rating(rating)
    current = normalize_card(card)
    moment = as_utc(now or utc_now())

    ease = current.ease_factor
    interval = current.interval
    reps = current.repetitions
    next_review: datetime | None = None

    if grade is Rating.AGAIN:
        reps = 0
        interval = MIN_INTERVAL
        stage = Stage.LEARNING
        next_review = moment + RELEARN_DELAY
    elif grade is Rating.HARD:
        ease = max(MIN_EASE, ease - EASE_STEP)
        interval = max(MIN_INTERVAL, math.ceil(interval * HARD_INTERVAL_FACTOR))
        reps += 1
        stage = Stage.LEARNING
    elif grade is Rating.GOOD:
        if reps == 0:
            interval = GOOD_FIRST_INTERVAL
        elif reps == 1:
            interval = GOOD_SECOND_INTERVAL
        else:
            interval = math.ceil(interval * ease)
        reps += 1
        stage = Stage.REVIEWING if reps >= REVIEWING_MIN_REPETITIONS else Stage.LEARNING
    else:
        ease = min(MAX_EASE, ease + EASE_STEP)
        if reps == 0:
            interval = EASY_FIRST_INTERVAL
        elif reps == 1:
            interval = EASY_SECOND_INTERVAL
        else:
            interval = math.ceil(interval * ease * EASY_BONUS)
        reps += 1
        if interval >= MASTERED_MIN_INTERVAL and reps >= MASTERED_MIN_REPETITIONS:
            stage = Stage.MASTERED
        else:
            stage = Stage.REVIEWING

    ease = _clamp_ease(ease)
    interval = max(MIN_INTERVAL, interval)
    if next_review is None:
        next_review = schedule_from(moment, interval, rng=rng)

    logger.debug(
        "Card %s rated %s: stage %s -> %s, interval %d -> %d, ease %.2f",
        current.id,
        grade.name,
        current.stage.value,
        stage.value,
        current.interval,
        interval,
        ease,
    )
    return replace(
        current,
        stage=stage,
        ease_factor=ease,
        interval=interval,
        repetitions=reps,
        next_review_date=next_review,
        last_review_date=moment,
        total_reviews=current.total_reviews + 1,
        last_rating=grade,
    )


def mark_difficult(card: Card, flagged: bool = True) -> Card:
    """Set the learner's manual difficulty flag without touching the schedule."""
    return replace(card, is_difficult=flagged)


def is_due(card: Card, now: datetime | None = None) -> bool:
    if card.next_review_date is None:
        return True
    return as_utc(card.next_review_date) <= as_utc(now or utc_now())


def get_due_cards(cards: Iterable[Card], *, now: datetime | None = None) -> list[Card]:
    """Cards never reviewed or whose next review is at or before ``now``, in input order."""
    moment = as_utc(now or utc_now())
    return [card for card in cards if is_due(card, moment)]


def get_new_cards(cards: Iterable[Card], limit: int = DEFAULT_NEW_CARD_LIMIT) -> list[Card]:
    """First ``limit`` cards still in the new stage, in input order."""
    if limit <= 0:
        return []
    fresh: list[Card] = []
    for card in cards:
        if card.stage is Stage.NEW:
            fresh.append(card)
            if len(fresh) >= limit:
                break
    return fresh


def is_difficult(
    card: Card,
    *,
    ease_threshold: float = DIFFICULT_EASE_THRESHOLD,
    repetitions_threshold: int = DIFFICULT_REPETITIONS_THRESHOLD,
) -> bool:
    if card.ease_factor and card.ease_factor < ease_threshold:
        return True
    if card.repetitions >= repetitions_threshold and card.stage is Stage.LEARNING:
        return True
    return card.last_rating is not None and card.last_rating <= Rating.HARD


def get_difficult_cards(
    cards: Iterable[Card],
    *,
    ease_threshold: float = DIFFICULT_EASE_THRESHOLD,
    repetitions_threshold: int = DIFFICULT_REPETITIONS_THRESHOLD,
) -> list[Card]:
    """Struggling cards, lowest ease factor first."""
    flagged = [
        card
        for card in cards
        if is_difficult(
            card,
            ease_threshold=ease_threshold,
            repetitions_threshold=repetitions_threshold,
        )
    ]
    return sorted(flagged, key=lambda card: card.ease_factor or DEFAULT_EASE)


def end_of_local_day(moment: datetime) -> datetime:
    """Return 23:59:59.999 of ``moment``'s calendar day in local time.

    ``moment`` must be timezone-aware; a naive value raises ``ValueError``.
    """
    local = require_aware(moment).astimezone()
    return local.replace(hour=23, minute=59, second=59, microsecond=999000)


def get_statistics(cards: Iterable[Card], *, now: datetime | None = None) -> DeckStatistics:
    stats = DeckStatistics()
    cutoff = end_of_local_day(now or utc_now())
    ease_sum = 0.0
    ease_count = 0

    for card in cards:
        stats.total += 1
        if card.stage is Stage.LEARNING:
            stats.learning += 1
        elif card.stage is Stage.REVIEWING:
            stats.reviewing += 1
        elif card.stage is Stage.MASTERED:
            stats.mastered += 1
        else:
            stats.new += 1

        if card.next_review_date is not None and as_utc(card.next_review_date) <= cutoff:
            stats.due_today += 1

        if card.ease_factor:
            ease_sum += card.ease_factor
            ease_count += 1

        stats.total_reviews += card.total_reviews

    if ease_count:
        stats.average_ease_factor = round(ease_sum / ease_count, 2)
    return stats


def predict_progress(
    cards: Iterable[Card],
    daily_new_cards: int = DEFAULT_NEW_CARD_LIMIT,
    daily_reviews: int = DEFAULT_DAILY_REVIEWS,
) -> ProgressForecast:
    """Rough study-plan estimate; advisory only."""
    if daily_new_cards <= 0:
        raise ValueError("daily_new_cards must be positive")
    stats = get_statistics(cards)
    days_to_finish = math.ceil(stats.new / daily_new_cards)
    return ProgressForecast(
        days_to_finish_new_cards=days_to_finish,
        estimated_days_to_mastery=math.ceil(days_to_finish * MASTERY_DAYS_FACTOR),
        projected_mastered_words=math.floor(stats.total * ASSUMED_RETENTION),
        recommended_daily_study_time=math.ceil((daily_new_cards * 2 + daily_reviews * 0.5) / 60),
    )


__all__ = [
    "DIFFICULT_EASE_THRESHOLD",
    "DIFFICULT_REPETITIONS_THRESHOLD",
    "MASTERED_MIN_INTERVAL",
    "MASTERED_MIN_REPETITIONS",
    "MAX_EASE",
    "MIN_EASE",
    "apply_rating",
    "coerce_rating",
    "end_of_local_day",
    "get_difficult_cards",
    "get_due_cards",
    "get_new_cards",
    "get_statistics",
    "is_difficult",
    "is_due",
    "mark_difficult",
    "normalize_card",
    "predict_progress",
    "schedule_from",
]
