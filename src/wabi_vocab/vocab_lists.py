"""Vocabulary list catalog: YAML loader, lookups and CSV header checks."""

from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConflictError, ValidationError
from .models import CsvValidation, VocabList

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_LISTS_FILE = DATA_DIR / "vocab_lists.yaml"
LISTS_FILE = Path(os.environ.get("WABI_VOCAB_LISTS_PATH", DEFAULT_LISTS_FILE))

REQUIRED_FIELDS: tuple[str, ...] = ("id", "display_name", "csv_file")
EXPECTED_CSV_HEADERS: tuple[str, ...] = (
    "英文詞彙,詞性,中文解釋",
    "english,pos,chinese",
    "word,type,meaning",
)

_list_cache: list[VocabList] | None = None


def _build_list(entry: Mapping[str, Any]) -> VocabList:
    for name in REQUIRED_FIELDS:
        if not entry.get(name):
            raise ValidationError(f"Missing required field: {name}")
    known = {f.name for f in fields(VocabList)}
    return VocabList(**{key: value for key, value in entry.items() if key in known})


def load_lists(path: Path | None = None) -> list[VocabList]:
    """Parse the YAML catalog and return its lists in file order. Cached in memory."""
    global _list_cache
    if _list_cache is not None and path is None:
        return _list_cache

    file_path = path or LISTS_FILE
    with open(file_path, encoding="utf-8") as f:
        raw: list[dict[str, Any]] = yaml.safe_load(f) or []

    lists = [_build_list(entry) for entry in raw]
    logger.debug("Loaded %d vocabulary lists from %s", len(lists), file_path)
    if path is None:
        _list_cache = lists
    return lists


def clear_cache() -> None:
    """Clear the in-memory catalog cache."""
    global _list_cache
    _list_cache = None


def get_all_lists() -> list[VocabList]:
    return load_lists()


def get_default_list() -> VocabList:
    lists = load_lists()
    if not lists:
        raise ValidationError(f"Vocabulary catalog {LISTS_FILE} defines no lists")
    return next((item for item in lists if item.is_default), lists[0])


def get_list_by_id(list_id: str) -> VocabList | None:
    return next((item for item in load_lists() if item.id == list_id), None)


def list_exists(list_id: str) -> bool:
    return get_list_by_id(list_id) is not None


def add_list(config: Mapping[str, Any]) -> VocabList:
    """Register a list for this process. Defaults fill every optional field."""
    vocab_list = _build_list(config)
    if list_exists(vocab_list.id):
        raise ConflictError(f"List with ID '{vocab_list.id}' already exists")
    load_lists().append(vocab_list)
    logger.info("Added vocabulary list %s", vocab_list.id)
    return vocab_list


def remove_list(list_id: str) -> VocabList | None:
    lists = load_lists()
    for index, item in enumerate(lists):
        if item.id == list_id:
            logger.info("Removed vocabulary list %s", list_id)
            return lists.pop(index)
    return None


def resolve_csv_path(vocab_list: VocabList) -> Path:
    """CSV paths in the catalog are relative to the catalog file."""
    csv_path = Path(vocab_list.csv_file)
    if csv_path.is_absolute():
        return csv_path
    return LISTS_FILE.parent / csv_path


def validate_csv_format(csv_content: str) -> CsvValidation:
    lines = csv_content.split("\n")
    if len(lines) < 2:
        return CsvValidation(False, "CSV file must have at least a header and one data row")

    header = lines[0].strip().lstrip("\ufeff")
    valid_header = any(expected.lower() in header.lower() for expected in EXPECTED_CSV_HEADERS)
    if not valid_header and len(header.split(",")) != 3:
        return CsvValidation(
            False,
            "CSV header should contain three columns: English word, part of speech, Chinese meaning",
        )
    return CsvValidation(True)


__all__ = [
    "add_list",
    "clear_cache",
    "get_all_lists",
    "get_default_list",
    "get_list_by_id",
    "list_exists",
    "load_lists",
    "remove_list",
    "resolve_csv_path",
    "validate_csv_format",
]
