"""Ledger persistence - each domain book mirrored to its own YAML file."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .base import LedgerBook

logger = logging.getLogger(__name__)


def load_book_from_yaml(path: str | Path, book: LedgerBook) -> int:
    """Replace the book's records with those in the file. Returns the record count."""
    path = Path(path)
    if not path.exists():
        logger.info(f"Ledger file not found: {path}")
        return 0

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    count = book.restore_snapshot(data or {})
    logger.info(f"Loaded {count} {type(book).__name__} records from {path}")
    return count


def save_book_to_yaml(path: str | Path, book: LedgerBook) -> None:
    """Write the whole book; the file is swapped in only once fully written."""
    path = Path(path)
    data = book.snapshot()

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
    tmp_path.replace(path)


def attach_yaml_file(book: LedgerBook, path: str | Path) -> int:
    """
    Load the book from ``path`` and save it back after every write.

    Saves run under the book lock, so the file always holds a state the
    book actually passed through.
    """
    path = Path(path)
    count = load_book_from_yaml(path, book)
    book.on_change(lambda changed: save_book_to_yaml(path, changed))
    return count
