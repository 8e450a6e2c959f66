"""Daily study bookkeeping: session accuracy, daily goal and streaks."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from .models import Card, Rating, as_utc, parse_datetime, require_aware, to_iso, utc_now
from .srs import coerce_rating, get_new_cards


@dataclass(slots=True)
class StudySession:
    started_at: datetime = field(default_factory=utc_now)
    words_studied: int = 0
    correct_answers: int = 0

    def record(self, rating: Rating | int) -> None:
        """Count one answer; Good and Easy count as correct."""
        grade = coerce_rating(rating)
        self.words_studied += 1
        if grade >= Rating.GOOD:
            self.correct_answers += 1

    @property
    def accuracy(self) -> int:
        """Percentage of correct answers, rounded; 0 before any answer."""
        if self.words_studied == 0:
            return 0
        return round(self.correct_answers / self.words_studied * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "startedAt": to_iso(self.started_at),
            "wordsStudied": self.words_studied,
            "correctAnswers": self.correct_answers,
            "accuracy": self.accuracy,
        }


def _local_date(moment: datetime) -> date:
    return as_utc(moment).astimezone().date()


def studied_today(cards: Iterable[Card], now: datetime | None = None) -> int:
    """Number of cards whose last review falls on today's local date.

    ``now`` must be timezone-aware. Naive review dates are read as UTC.
    """
    today = _local_date(require_aware(now or utc_now()))
    return sum(
        1
        for card in cards
        if card.last_review_date is not None and _local_date(card.last_review_date) == today
    )


def daily_goal_progress(
    cards: Iterable[Card],
    daily_goal: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    studied = studied_today(cards, now)
    current = min(studied, daily_goal)
    percentage = min(100.0, current / daily_goal * 100) if daily_goal > 0 else 100.0
    return {
        "studiedToday": studied,
        "current": current,
        "goal": daily_goal,
        "percentage": round(percentage, 1),
        "goalReached": current >= daily_goal,
    }


def next_card_to_learn(cards: Iterable[Card], daily_goal: int) -> Card | None:
    fresh = get_new_cards(cards, daily_goal)
    return fresh[0] if fresh else None


def streak_days(stats: Mapping[str, Any] | None, now: datetime | None = None) -> int:
    """Current streak, or 0 once more than a day has passed since the last study."""
    if not stats or not stats.get("lastStudyDate"):
        return 0
    last_study = parse_datetime(stats["lastStudyDate"])
    elapsed = abs(as_utc(now or utc_now()) - last_study)
    if math.ceil(elapsed / timedelta(days=1)) <= 1:
        return int(stats.get("streakDays") or 1)
    return 0


def next_streak(previous_stats: Mapping[str, Any] | None, now: datetime | None = None) -> int:
    """Streak length to store after studying at ``now``."""
    moment = require_aware(now or utc_now())
    if not previous_stats or not previous_stats.get("lastStudyDate"):
        return 1
    last_day = _local_date(parse_datetime(previous_stats["lastStudyDate"]))
    today = _local_date(moment)
    previous = int(previous_stats.get("streakDays") or 1)
    if last_day == today:
        return previous
    if last_day == today - timedelta(days=1):
        return previous + 1
    return 1


__all__ = [
    "StudySession",
    "daily_goal_progress",
    "next_card_to_learn",
    "next_streak",
    "streak_days",
    "studied_today",
]
