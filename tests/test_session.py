from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from wabi_vocab.errors import InvalidRatingError
from wabi_vocab.models import Card, Rating, Stage, to_iso
from wabi_vocab.session import (
    StudySession,
    daily_goal_progress,
    next_card_to_learn,
    next_streak,
    streak_days,
    studied_today,
)

# Local wall-clock times keep the calendar-day checks independent of the host zone.
LOCAL_NOON = datetime(2024, 3, 5, 12, 0).astimezone()


def _reviewed(card_id: str, when: datetime | None) -> Card:
    stage = Stage.NEW if when is None else Stage.LEARNING
    return Card(id=card_id, list_id="ket", stage=stage, last_review_date=when)


class TestStudySession:
    def test_accuracy_before_any_answer(self):
        assert StudySession().accuracy == 0

    def test_good_and_easy_count_as_correct(self):
        session = StudySession()
        for rating in (Rating.AGAIN, Rating.HARD, Rating.GOOD, 4):
            session.record(rating)

        assert session.words_studied == 4
        assert session.correct_answers == 2
        assert session.accuracy == 50

    def test_accuracy_is_rounded(self):
        session = StudySession()
        for rating in (Rating.GOOD, Rating.GOOD, Rating.AGAIN):
            session.record(rating)
        assert session.accuracy == 67

    def test_invalid_rating_is_not_counted(self):
        session = StudySession()
        with pytest.raises(InvalidRatingError):
            session.record(0)
        assert session.words_studied == 0


class TestDailyGoal:
    def _cards(self) -> list[Card]:
        return [
            _reviewed("ket_1", LOCAL_NOON.replace(hour=9)),
            _reviewed("ket_2", LOCAL_NOON.replace(hour=11, minute=30)),
            _reviewed("ket_3", LOCAL_NOON - timedelta(days=1)),
            _reviewed("ket_4", None),
        ]

    def test_studied_today_counts_local_calendar_day(self):
        assert studied_today(self._cards(), now=LOCAL_NOON) == 2

    def test_progress_towards_goal(self):
        progress = daily_goal_progress(self._cards(), 3, now=LOCAL_NOON)

        assert progress == {
            "studiedToday": 2,
            "current": 2,
            "goal": 3,
            "percentage": 66.7,
            "goalReached": False,
        }

    def test_progress_caps_at_goal(self):
        progress = daily_goal_progress(self._cards(), 1, now=LOCAL_NOON)

        assert progress["current"] == 1
        assert progress["percentage"] == 100.0
        assert progress["goalReached"] is True

    def test_next_card_is_first_new_card(self):
        cards = self._cards() + [_reviewed("ket_5", None)]

        assert next_card_to_learn(cards, 20).id == "ket_4"
        assert next_card_to_learn(cards[:3], 20) is None


class TestStreak:
    def test_no_stats_means_no_streak(self):
        assert streak_days(None, now=LOCAL_NOON) == 0
        assert streak_days({}, now=LOCAL_NOON) == 0

    def test_streak_survives_within_a_day(self):
        stats = {"lastStudyDate": to_iso(LOCAL_NOON - timedelta(hours=20)), "streakDays": 4}
        assert streak_days(stats, now=LOCAL_NOON) == 4

    def test_streak_defaults_to_one(self):
        stats = {"lastStudyDate": to_iso(LOCAL_NOON)}
        assert streak_days(stats, now=LOCAL_NOON) == 1

    def test_streak_lapses_after_a_day(self):
        stats = {"lastStudyDate": to_iso(LOCAL_NOON - timedelta(hours=30)), "streakDays": 4}
        assert streak_days(stats, now=LOCAL_NOON) == 0

    def test_next_streak_first_study(self):
        assert next_streak(None, now=LOCAL_NOON) == 1

    def test_next_streak_same_day_keeps_value(self):
        stats = {"lastStudyDate": to_iso(LOCAL_NOON.replace(hour=8)), "streakDays": 3}
        assert next_streak(stats, now=LOCAL_NOON) == 3

    def test_next_streak_consecutive_day_extends(self):
        stats = {"lastStudyDate": to_iso(LOCAL_NOON - timedelta(days=1)), "streakDays": 3}
        assert next_streak(stats, now=LOCAL_NOON) == 4

    def test_next_streak_gap_resets(self):
        stats = {"lastStudyDate": to_iso(LOCAL_NOON - timedelta(days=3)), "streakDays": 3}
        assert next_streak(stats, now=LOCAL_NOON) == 1


def test_studied_today_rejects_naive_now():
    with pytest.raises(ValueError, match="timezone-aware"):
        studied_today([], now=datetime(2024, 3, 5, 12, 0))


def test_next_streak_rejects_naive_now():
    with pytest.raises(ValueError, match="timezone-aware"):
        next_streak(None, now=datetime(2024, 3, 5, 12, 0))


def test_session_to_dict():
    session = StudySession(started_at=LOCAL_NOON)
    session.record(Rating.EASY)

    assert session.to_dict() == {
        "startedAt": to_iso(LOCAL_NOON),
        "wordsStudied": 1,
        "correctAnswers": 1,
        "accuracy": 100,
    }
