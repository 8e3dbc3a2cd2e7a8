"""Shared pieces of the domain books: status machines, status history, money."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, fields, is_dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Protocol


class LedgerError(Exception):
    """A domain rule refused the operation. Nothing was changed."""
    pass


class UnknownEntityError(LedgerError):
    """Raised when a domain record does not exist."""
    pass


@dataclass(frozen=True, slots=True)
class StatusChange:
    """One entry of a domain record's own status history."""
    from_status: str
    to_status: str
    actor_id: str
    timestamp: str
    notes: str = ""


class Tracked(Protocol):
    status: Any
    status_history: list[StatusChange]
    updated_at: str


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Parse a money amount.

    Raises:
        LedgerError: If the value is missing, not numeric or not positive
    """
    if value is None:
        raise LedgerError(f"'{field_name}' is required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise LedgerError(f"'{field_name}' must be a number, got {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise LedgerError(f"'{field_name}' must be positive, got {value!r}")
    return amount


class StatusMachine:
    """Allowed edges of one domain status enum."""

    def __init__(self, name: str, edges: dict[Any, frozenset]):
        self.name = name
        self._edges = edges

    def allows(self, current: Any, target: Any) -> bool:
        return target in self._edges.get(current, frozenset())

    def check(self, current: Any, target: Any) -> None:
        """
        Raises:
            LedgerError: If the edge is not part of the machine
        """
        if not self.allows(current, target):
            raise LedgerError(
                f"Invalid {self.name} status transition from "
                f"{getattr(current, 'value', current)} to {getattr(target, 'value', target)}"
            )

    def advance(self, record: Tracked, target: Any, actor_id: str, notes: str = "") -> None:
        """Move a record along a checked edge and log it in its history."""
        self.check(record.status, target)
        now = now_iso()
        record.status_history.append(StatusChange(
            from_status=record.status.value,
            to_status=target.value,
            actor_id=actor_id,
            timestamp=now,
            notes=notes,
        ))
        record.status = target
        record.updated_at = now


class LedgerBook:
    """
    Base for the thread-safe domain books.

    ``lock`` is re-entrant so an adapter can hold it across a read-check-write
    sequence that calls back into the book.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: list[Callable[[LedgerBook], None]] = []

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def on_change(self, listener: Callable[[LedgerBook], None]) -> None:
        """Call ``listener(book)`` after every write, still under the book lock."""
        self._listeners.append(listener)

    def snapshot(self) -> dict[str, Any]:
        """Plain-data copy of the book's records."""
        raise NotImplementedError

    def restore_snapshot(self, data: dict[str, Any]) -> int:
        """Replace the book's records from ``snapshot()`` output. Returns the record count."""
        raise NotImplementedError

    def _changed(self) -> None:
        for listener in self._listeners:
            listener(self)

    @staticmethod
    def _next_id(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


# =============================================================================
# Plain-data conversion for snapshots
# =============================================================================

def dump_record(record: Any) -> dict[str, Any]:
    """Dataclass record -> dict of YAML-safe values (enums by value, money as strings)."""
    return {f.name: _plain(getattr(record, f.name)) for f in fields(record)}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if is_dataclass(value):
        return dump_record(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def load_record(cls: type, data: dict[str, Any], **converters: Callable[[Any], Any]) -> Any:
    """
    Build a record from ``dump_record`` output.

    ``converters`` map field names to parsers; ``status_history`` is always
    parsed. Unknown keys are ignored.
    """
    names = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in names:
            continue
        if key == "status_history":
            value = [StatusChange(**entry) for entry in value or []]
        elif key in converters and value is not None:
            value = converters[key](value)
        kwargs[key] = value
    return cls(**kwargs)
