"""Notification event types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """What happened to a request."""
    CREATED = "request.created"
    TRANSITIONED = "request.transitioned"
    AWAITING_ACTION = "request.awaiting_action"
    SYNCHRONIZED = "request.synchronized"
    DELETED = "request.deleted"


def role_recipient(role: str) -> str:
    """Recipient address for everyone holding a role."""
    return f"role:{role}"


@dataclass(frozen=True, slots=True)
class Notification:
    """
    A single notification.

    ``recipient`` is an actor id or a ``role:<NAME>`` address.
    """
    recipient: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notification_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_role_broadcast(self) -> bool:
        return self.recipient.startswith("role:")

    def to_dict(self) -> dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "timestamp": self.timestamp.isoformat(),
            "recipient": self.recipient,
            "event": self.event,
            "payload": self.payload,
        }
