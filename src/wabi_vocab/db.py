from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

from . import vocab_lists
from .errors import NotFoundError, ValidationError
from .models import Card, DeckStatistics, Stage, as_utc, to_iso, utc_now
from .transfer import EXPORT_VERSION, import_data

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DATA_DIR / "wabi_vocab.db"
DB_PATH = Path(os.environ.get("WABI_VOCAB_DB_PATH", DEFAULT_DB_PATH))

CURRENT_LIST_KEY = "vocab-current-list"
APP_SETTINGS_KEY = "vocab-app-settings"
DEFAULT_APP_SETTINGS: dict[str, Any] = {
    "dailyGoal": 20,
    "autoPronounce": False,
    "showExamples": True,
    "theme": "wabi-sabi",
}

# Only scheduling state is persisted; word text always comes from the CSV.
PROGRESS_FIELDS: tuple[str, ...] = (
    "id",
    "listId",
    "stage",
    "easeFactor",
    "interval",
    "repetitions",
    "nextReviewDate",
    "lastReviewDate",
    "totalReviews",
    "isDifficult",
    "lastRating",
)


@contextmanager
def connect() -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection that commits on success."""

    connection = _open_connection()
    try:
        yield connection
        connection.commit()
    finally:
        connection.close()


def _open_connection() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(DB_PATH)
    connection.row_factory = sqlite3.Row
    return connection


def init_db() -> None:
    with connect() as connection:
        connection.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )


def storage_key(list_id: str, kind: str = "progress") -> str:
    return f"vocab-{kind}-{list_id}"


def get_item(key: str) -> Any | None:
    with connect() as connection:
        row = connection.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    if row is None:
        return None
    return json.loads(row["value"])


def set_item(key: str, value: Any) -> None:
    with connect() as connection:
        connection.execute(
            """
            INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False), to_iso(utc_now())),
        )


def remove_item(key: str) -> None:
    with connect() as connection:
        connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))


def _progress_record(card: Card) -> dict[str, Any]:
    record = card.to_dict()
    return {name: record[name] for name in PROGRESS_FIELDS}


def save_list_progress(list_id: str, cards: Sequence[Card]) -> None:
    set_item(storage_key(list_id), [_progress_record(card) for card in cards])
    logger.debug("Saved progress for %d cards in list %s", len(cards), list_id)


def load_list_progress(list_id: str) -> list[Card] | None:
    """Return saved cards for ``list_id`` or ``None`` when nothing was stored."""
    records = get_item(storage_key(list_id))
    if records is None:
        return None
    return import_data({"cards": records})


def save_list_stats(
    list_id: str,
    stats: DeckStatistics | Mapping[str, Any],
    *,
    now: datetime | None = None,
    **extra: Any,
) -> dict[str, Any]:
    payload = stats.to_dict() if isinstance(stats, DeckStatistics) else dict(stats)
    payload.update(extra)
    payload["lastStudyDate"] = to_iso(as_utc(now or utc_now()))
    set_item(storage_key(list_id, "stats"), payload)
    return payload


def load_list_stats(list_id: str) -> dict[str, Any] | None:
    return get_item(storage_key(list_id, "stats"))


def clear_list_progress(list_id: str) -> None:
    remove_item(storage_key(list_id))
    remove_item(storage_key(list_id, "stats"))
    logger.info("Cleared progress for list %s", list_id)


def get_all_lists_progress() -> dict[str, dict[str, Any]]:
    summary: dict[str, dict[str, Any]] = {}
    for vocab_list in vocab_lists.get_all_lists():
        progress = load_list_progress(vocab_list.id) or []
        summary[vocab_list.id] = {
            "listConfig": vocab_list.to_dict(),
            "stats": load_list_stats(vocab_list.id),
            "wordsLearned": sum(1 for card in progress if card.total_reviews > 0),
            "wordsMastered": sum(1 for card in progress if card.stage is Stage.MASTERED),
        }
    return summary


def export_list_progress(list_id: str, *, now: datetime | None = None) -> dict[str, Any]:
    vocab_list = vocab_lists.get_list_by_id(list_id)
    if vocab_list is None:
        raise NotFoundError(f"List '{list_id}' does not exist")
    return {
        "listId": list_id,
        "listConfig": vocab_list.to_dict(),
        "progress": get_item(storage_key(list_id)),
        "stats": load_list_stats(list_id),
        "exportDate": to_iso(as_utc(now or utc_now())),
        "version": EXPORT_VERSION,
    }


def import_list_progress(payload: Any) -> str:
    """Store an exported list payload, replacing that list's progress.

    Returns the imported list id.
    """
    if not isinstance(payload, Mapping) or not payload.get("listId") or payload.get("progress") is None:
        raise ValidationError("Invalid import data format")

    list_id = str(payload["listId"])
    if not vocab_lists.list_exists(list_id):
        raise NotFoundError(f"List '{list_id}' does not exist")

    cards = import_data({"cards": payload["progress"]})
    save_list_progress(list_id, cards)
    stats = payload.get("stats")
    if isinstance(stats, Mapping):
        set_item(storage_key(list_id, "stats"), dict(stats))
    logger.info("Imported progress for %d cards into list %s", len(cards), list_id)
    return list_id


def save_current_list(list_id: str) -> None:
    set_item(CURRENT_LIST_KEY, list_id)


def load_current_list() -> str:
    """Saved list id if it is still in the catalog, otherwise the default list."""
    list_id = get_item(CURRENT_LIST_KEY)
    if list_id and vocab_lists.list_exists(list_id):
        return list_id
    return vocab_lists.get_default_list().id


def save_app_settings(settings: Mapping[str, Any]) -> None:
    set_item(APP_SETTINGS_KEY, dict(settings))


def load_app_settings() -> dict[str, Any]:
    stored = get_item(APP_SETTINGS_KEY) or {}
    return {**DEFAULT_APP_SETTINGS, **stored}


def reset_all_progress() -> None:
    for vocab_list in vocab_lists.get_all_lists():
        clear_list_progress(vocab_list.id)
    remove_item(CURRENT_LIST_KEY)
    remove_item(APP_SETTINGS_KEY)


__all__ = [
    "DEFAULT_APP_SETTINGS",
    "clear_list_progress",
    "connect",
    "export_list_progress",
    "get_all_lists_progress",
    "get_item",
    "import_list_progress",
    "init_db",
    "load_app_settings",
    "load_current_list",
    "load_list_progress",
    "load_list_stats",
    "remove_item",
    "reset_all_progress",
    "save_app_settings",
    "save_current_list",
    "save_list_progress",
    "save_list_stats",
    "set_item",
    "storage_key",
]
