from __future__ import annotations

import argparse
import csv
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Sequence

from . import db, vocab_lists
from .errors import NotFoundError, ValidationError
from .models import Card
from .session import next_streak
from .srs import get_statistics

logger = logging.getLogger(__name__)


def parse_csv(csv_text: str, list_id: str) -> list[Card]:
    """Turn ``english,partOfSpeech,chinese`` rows into new cards.

    The header line is skipped. Card ids are ``{list_id}_{line}`` so they stay
    stable as long as the CSV rows keep their positions.
    """
    lines = csv_text.split("\n")
    cards: list[Card] = []
    for index in range(1, len(lines)):
        line = lines[index].strip()
        if not line:
            continue
        columns = next(csv.reader([line]), [])
        english = columns[0].strip() if len(columns) > 0 else ""
        part_of_speech = columns[1].strip() if len(columns) > 1 else ""
        chinese = columns[2].strip() if len(columns) > 2 else ""
        if not english or not chinese:
            continue
        cards.append(
            Card(
                id=f"{list_id}_{index}",
                list_id=list_id,
                english=english,
                part_of_speech=part_of_speech,
                chinese=chinese,
            )
        )
    return cards


def read_vocabulary_file(path: Path, list_id: str) -> list[Card]:
    if not path.exists():
        raise NotFoundError(f"Vocabulary file {path} not found")
    text = path.read_text(encoding="utf-8-sig")
    validation = vocab_lists.validate_csv_format(text)
    if not validation.valid:
        raise ValidationError(validation.error or f"Malformed vocabulary file {path}")
    return parse_csv(text, list_id)


def load_vocabulary(list_id: str) -> list[Card]:
    vocab_list = vocab_lists.get_list_by_id(list_id)
    if vocab_list is None:
        raise NotFoundError(f"List '{list_id}' does not exist")
    cards = read_vocabulary_file(vocab_lists.resolve_csv_path(vocab_list), list_id)
    logger.info("Loaded %s: %d words", vocab_list.display_name, len(cards))
    return cards


def merge_progress(cards: Sequence[Card], saved: Iterable[Card]) -> list[Card]:
    """Overlay saved scheduling state onto freshly parsed cards, matched by id."""
    by_id = {card.id: card for card in saved}
    merged: list[Card] = []
    for card in cards:
        progress = by_id.get(card.id)
        if progress is None:
            merged.append(card)
            continue
        merged.append(
            replace(
                card,
                stage=progress.stage,
                ease_factor=progress.ease_factor,
                interval=progress.interval,
                repetitions=progress.repetitions,
                next_review_date=progress.next_review_date,
                last_review_date=progress.last_review_date,
                total_reviews=progress.total_reviews,
                is_difficult=progress.is_difficult,
                last_rating=progress.last_rating,
            )
        )
    return merged


def load_deck(list_id: str) -> list[Card]:
    """Vocabulary for ``list_id`` with any stored progress applied."""
    cards = load_vocabulary(list_id)
    saved = db.load_list_progress(list_id)
    if saved:
        cards = merge_progress(cards, saved)
    return cards


def save_deck(list_id: str, cards: Sequence[Card], *, now: datetime | None = None) -> None:
    """Persist scheduling state and refresh the list's stats snapshot."""
    previous = db.load_list_stats(list_id)
    db.save_list_progress(list_id, cards)
    db.save_list_stats(
        list_id,
        get_statistics(cards, now=now),
        now=now,
        streakDays=next_streak(previous, now),
    )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check a vocabulary CSV and optionally seed its list")
    parser.add_argument("list_id", help="Vocabulary list id from the catalog")
    parser.add_argument(
        "--csv",
        dest="csv_path",
        type=Path,
        default=None,
        help="Read this CSV instead of the catalog's file",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Store the fresh deck if the list has no saved progress yet",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    list_id: str = args.list_id

    if args.csv_path is not None:
        cards = read_vocabulary_file(args.csv_path, list_id)
    else:
        cards = load_vocabulary(list_id)
    print(f"{list_id}: {len(cards)} words")

    if not args.seed:
        return
    db.init_db()
    if db.load_list_progress(list_id) is not None:
        print(f"{list_id} already has saved progress; nothing seeded")
        return
    db.save_list_progress(list_id, cards)
    print(f"Seeded {len(cards)} cards for {list_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
