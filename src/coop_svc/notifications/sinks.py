"""Notification sinks - where dispatched notifications end up."""

from __future__ import annotations

import json
import logging
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .events import Notification

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """
    Abstract base class for notification sinks.

    Delivery transport (email, SMS, push) lives behind a sink; the workflow
    only ever sees ``send``.
    """

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """Deliver one notification. May raise; the dispatcher absorbs it."""
        ...

    def close(self) -> None:
        """Clean up the sink (called on shutdown)."""
        pass


@dataclass
class ConsoleSink(NotificationSink):
    """
    Sink that writes notifications to console (stdout/stderr).

    Useful for development and debugging.
    """
    # Output destination
    stream: str = "stdout"  # stdout | stderr

    # Output format
    format: str = "compact"  # json | compact

    # Prefix for each line
    prefix: str = "[NOTIFY] "

    def send(self, notification: Notification) -> None:
        out = sys.stdout if self.stream == "stdout" else sys.stderr
        if self.format == "json":
            line = json.dumps(notification.to_dict(), default=str)
        else:
            line = (
                f"{notification.timestamp.isoformat()} "
                f"{notification.recipient} "
                f"{notification.event} "
                f"{notification.payload.get('request_id', '')}"
            )
        print(f"{self.prefix}{line}", file=out)


@dataclass
class LogSink(NotificationSink):
    """Sink that writes notifications to the application log."""
    level: int = logging.INFO

    def send(self, notification: Notification) -> None:
        logger.log(
            self.level,
            f"notify {notification.recipient} {notification.event} {notification.payload}",
        )


@dataclass
class MemorySink(NotificationSink):
    """Sink that keeps notifications in memory (tests, inspection endpoints)."""
    max_items: int = 1000
    _items: list[Notification] = field(default_factory=list, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def send(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)
            if len(self._items) > self.max_items:
                del self._items[: len(self._items) - self.max_items]

    @property
    def items(self) -> list[Notification]:
        with self._lock:
            return list(self._items)

    def for_recipient(self, recipient: str) -> list[Notification]:
        with self._lock:
            return [n for n in self._items if n.recipient == recipient]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def create_sink(kind: str, **options) -> NotificationSink:
    """Build a sink from its config name: console | log | memory."""
    if kind == "console":
        return ConsoleSink(**options)
    if kind == "log":
        return LogSink(**options)
    if kind == "memory":
        return MemorySink(**options)
    raise ValueError(f"Unknown notification sink: {kind}")
