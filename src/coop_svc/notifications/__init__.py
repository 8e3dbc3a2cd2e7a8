"""Request notifications - best-effort fan-out to pluggable sinks."""

from .events import EventType, Notification, role_recipient
from .sinks import ConsoleSink, LogSink, MemorySink, NotificationSink, create_sink
from .dispatcher import NotificationDispatcher

__all__ = [
    "EventType",
    "Notification",
    "role_recipient",
    "ConsoleSink",
    "LogSink",
    "MemorySink",
    "NotificationSink",
    "create_sink",
    "NotificationDispatcher",
]
