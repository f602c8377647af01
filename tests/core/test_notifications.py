"""
Tests for core.events — Subscriber registry and after-commit dispatch.
"""

import pytest
from datetime import datetime, timezone

from core.events import (
    ORDER_CREATED,
    REFUND_DECIDED,
    WILDCARD,
    DuplicateSubscriberError,
    EventBusError,
    InvalidEventTypeFormat,
    NotificationDispatcher,
    NotificationEvent,
    SubscriberRegistry,
)


def _event(event_type=ORDER_CREATED):
    return NotificationEvent(
        event_type=event_type,
        subject_id="ord-1",
        actor_id="cust-1",
        occurred_at=datetime(2026, 5, 4, tzinfo=timezone.utc),
        new_status="pending_payment",
    )


# ── Registry Tests ───────────────────────────────────────────

class TestSubscriberRegistry:
    def test_event_type_format(self):
        registry = SubscriberRegistry()
        with pytest.raises(InvalidEventTypeFormat):
            registry.register_subscriber("orders.created", lambda e: None, "x")
        with pytest.raises(InvalidEventTypeFormat):
            registry.register_subscriber("orders..created", lambda e: None, "x")

    def test_duplicate_handler_rejected(self):
        registry = SubscriberRegistry()

        def handler(event):
            pass

        registry.register_subscriber(ORDER_CREATED, handler, "email")
        with pytest.raises(DuplicateSubscriberError):
            registry.register_subscriber(ORDER_CREATED, handler, "email")

    def test_handler_must_be_callable(self):
        with pytest.raises(EventBusError):
            SubscriberRegistry().register_subscriber(ORDER_CREATED, "not-callable", "x")

    def test_wildcard_subscribers_come_last(self):
        registry = SubscriberRegistry()

        def specific(event):
            pass

        def everything(event):
            pass

        registry.register_subscriber(WILDCARD, everything, "audit")
        registry.register_subscriber(ORDER_CREATED, specific, "email")
        handlers = [h for h, _ in registry.get_subscribers(ORDER_CREATED)]
        assert handlers == [specific, everything]
        assert registry.subscriber_count(REFUND_DECIDED) == 1

    def test_unheard_event_has_no_subscribers(self):
        registry = SubscriberRegistry()
        assert registry.get_subscribers(ORDER_CREATED) == []
        assert registry.subscriber_count(ORDER_CREATED) == 0


# ── Dispatcher Tests ─────────────────────────────────────────

class TestNotificationDispatcher:
    def test_no_subscribers_is_fine(self):
        result = NotificationDispatcher().emit(_event())
        assert result["subscribers_notified"] == 0

    def test_failing_subscriber_isolated(self, caplog):
        dispatcher = NotificationDispatcher()
        heard = []

        def broken(event):
            raise RuntimeError("smtp down")

        dispatcher.registry.register_subscriber(ORDER_CREATED, broken, "email")
        dispatcher.registry.register_subscriber(ORDER_CREATED, heard.append, "in-app")

        result = dispatcher.emit(_event())
        assert result["subscribers_notified"] == 1
        assert result["subscribers_failed"] == 1
        assert result["failures"][0]["subscriber"] == "email"
        assert result["failures"][0]["error_type"] == "RuntimeError"
        assert [e.subject_id for e in heard] == ["ord-1"]
        assert "Subscriber failed" in caplog.text

    def test_event_to_dict(self):
        event = _event()
        data = event.to_dict()
        assert data["event_id"] == str(event.event_id)
        assert data["new_status"] == "pending_payment"
        assert data["occurred_at"] == "2026-05-04T00:00:00+00:00"
