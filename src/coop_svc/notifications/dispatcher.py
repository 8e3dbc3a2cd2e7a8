"""Best-effort notification dispatcher."""

from __future__ import annotations

import logging
import threading
from typing import Any

from .events import Notification
from .sinks import NotificationSink

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Fire-and-forget fan-out of notifications to sinks.

    ``notify`` never raises: a failing sink is logged and counted, and the
    caller's state change stands.
    """

    def __init__(self, sinks: list[NotificationSink] | None = None, enabled: bool = True):
        self._sinks: list[NotificationSink] = list(sinks or [])
        self.enabled = enabled
        self._lock = threading.Lock()
        self._stats = {
            "sent": 0,
            "skipped": 0,
            "errors": 0,
        }

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def notify(self, recipient: str, event: str, payload: dict[str, Any] | None = None) -> None:
        """Send one notification to every sink."""
        if not self.enabled or not recipient:
            with self._lock:
                self._stats["skipped"] += 1
            return

        notification = Notification(recipient=recipient, event=event, payload=dict(payload or {}))
        for sink in self._sinks:
            try:
                sink.send(notification)
                with self._lock:
                    self._stats["sent"] += 1
            except Exception as e:
                logger.error(f"Notification to {recipient} ({event}) failed in {type(sink).__name__}: {e}")
                with self._lock:
                    self._stats["errors"] += 1

    def close(self) -> None:
        for sink in self._sinks:
            try:
                sink.close()
            except Exception as e:
                logger.error(f"Error closing notification sink {type(sink).__name__}: {e}")
        logger.info(f"Notification dispatcher closed. Stats: {self.stats}")

    @property
    def stats(self) -> dict:
        """Get dispatcher statistics."""
        with self._lock:
            return {
                **self._stats,
                "sinks": len(self._sinks),
                "enabled": self.enabled,
            }
