"""Tests for notification dispatch and sinks."""

import logging

import pytest

from coop_svc.notifications.dispatcher import NotificationDispatcher
from coop_svc.notifications.events import EventType, Notification, role_recipient
from coop_svc.notifications.sinks import ConsoleSink, LogSink, MemorySink, NotificationSink, create_sink


class FailingSink(NotificationSink):
    def send(self, notification):
        raise RuntimeError("gateway timeout")

    def close(self):
        raise RuntimeError("already closed")


class TestDispatcher:

    def test_fans_out_to_every_sink(self):
        first, second = MemorySink(), MemorySink()
        dispatcher = NotificationDispatcher(sinks=[first, second])

        dispatcher.notify("m-001", EventType.CREATED.value, {"request_id": "REQ-1"})

        assert len(first.items) == len(second.items) == 1
        assert first.items[0].payload == {"request_id": "REQ-1"}
        assert dispatcher.stats["sent"] == 2

    def test_failing_sink_never_raises(self):
        memory = MemorySink()
        dispatcher = NotificationDispatcher(sinks=[FailingSink(), memory])

        dispatcher.notify("m-001", EventType.TRANSITIONED.value)

        assert len(memory.items) == 1
        assert dispatcher.stats["errors"] == 1
        assert dispatcher.stats["sent"] == 1

    def test_disabled(self):
        memory = MemorySink()
        dispatcher = NotificationDispatcher(sinks=[memory], enabled=False)
        dispatcher.notify("m-001", EventType.CREATED.value)
        assert memory.items == []
        assert dispatcher.stats["skipped"] == 1

    def test_missing_recipient_is_skipped(self):
        dispatcher = NotificationDispatcher(sinks=[MemorySink()])
        dispatcher.notify("", EventType.CREATED.value)
        assert dispatcher.stats["skipped"] == 1

    def test_close_survives_sink_errors(self):
        dispatcher = NotificationDispatcher(sinks=[FailingSink()])
        dispatcher.close()


class TestSinks:

    def test_role_broadcast(self):
        assert Notification(role_recipient("TREASURER"), "x").is_role_broadcast
        assert not Notification("t-001", "x").is_role_broadcast

    def test_memory_sink_bounded(self):
        sink = MemorySink(max_items=3)
        for i in range(5):
            sink.send(Notification(f"m-{i}", "x"))
        assert [n.recipient for n in sink.items] == ["m-2", "m-3", "m-4"]

    def test_memory_sink_filter_and_clear(self):
        sink = MemorySink()
        sink.send(Notification("m-001", "a"))
        sink.send(Notification("m-002", "b"))
        assert [n.event for n in sink.for_recipient("m-002")] == ["b"]
        sink.clear()
        assert sink.items == []

    def test_console_sink_json(self, capsys):
        ConsoleSink(format="json").send(Notification("m-001", EventType.CREATED.value, {"request_id": "REQ-9"}))
        out = capsys.readouterr().out
        assert out.startswith("[NOTIFY] {")
        assert '"request.created"' in out

    def test_log_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="coop_svc.notifications.sinks"):
            LogSink().send(Notification("role:ADMIN", EventType.AWAITING_ACTION.value))
        assert "role:ADMIN request.awaiting_action" in caplog.text

    @pytest.mark.parametrize("kind,cls", [("console", ConsoleSink), ("log", LogSink), ("memory", MemorySink)])
    def test_create_sink(self, kind, cls):
        assert isinstance(create_sink(kind), cls)

    def test_create_unknown_sink(self):
        with pytest.raises(ValueError):
            create_sink("carrier-pigeon")
