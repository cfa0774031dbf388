"""
Tests for lifecycle events and the client notification listeners
"""

from datetime import datetime

import pytest

from barbershop.domain.subscriptions import SubscriptionEvent, SubscriptionEventDispatcher, SubscriptionService
from barbershop.domain.subscriptions.events import (
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_PAUSED,
    SUBSCRIPTION_RESUMED,
)
from barbershop.services.notification_service import (
    build_subscription_message,
    register_subscription_listeners,
    send_notification,
)
from barbershop.shared.validators import validate_br_mobile_phone


def make_event(**overrides):
    fields = {
        "subscription_id": 1,
        "client_id": 1,
        "client_name": "João Silva",
        "client_phone": "(34) 99876-5432",
        "barber_id": 1,
        "barber_name": "Carlos",
        "total_slots": 5,
        "plan_type": "WEEKLY",
    }
    fields.update(overrides)
    return SubscriptionEvent(**fields)


class RecordingSender:
    def __init__(self, success=True, error=None, raises=None):
        self.sent = []
        self.success = success
        self.error = error
        self.raises = raises

    def __call__(self, phone, message):
        if self.raises:
            raise self.raises
        self.sent.append((phone, message))
        return self.success, self.error


class TestDispatcher:
    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError):
            SubscriptionEventDispatcher().register("subscription.renewed", lambda event: None)

    def test_handlers_run_in_registration_order(self):
        calls = []
        dispatcher = SubscriptionEventDispatcher()
        dispatcher.register(SUBSCRIPTION_PAUSED, lambda event: calls.append("first"))
        dispatcher.register(SUBSCRIPTION_PAUSED, lambda event: calls.append("second"))

        assert dispatcher.emit(SUBSCRIPTION_PAUSED, make_event()) == 2
        assert calls == ["first", "second"]

    def test_failing_handler_is_isolated(self):
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        dispatcher = SubscriptionEventDispatcher()
        dispatcher.register(SUBSCRIPTION_CANCELLED, broken)
        dispatcher.register(SUBSCRIPTION_CANCELLED, calls.append)

        assert dispatcher.emit(SUBSCRIPTION_CANCELLED, make_event()) == 1
        assert len(calls) == 1

    def test_event_without_handlers(self):
        assert SubscriptionEventDispatcher().emit(SUBSCRIPTION_RESUMED, make_event()) == 0


class TestSendNotification:
    def test_phone_is_normalized(self):
        sender = RecordingSender()

        result = send_notification("(34) 99876-5432", "João", "test", "Hello", sender)

        assert result == {"sms_sent": True, "sms_error": None}
        assert sender.sent == [("+5534998765432", "Hello")]

    def test_missing_phone(self):
        sender = RecordingSender()
        result = send_notification(None, "João", "test", "Hello", sender)
        assert result["sms_error"] == "No phone number provided"
        assert sender.sent == []

    def test_invalid_phone(self):
        sender = RecordingSender()
        result = send_notification("1234", "João", "test", "Hello", sender)
        assert result == {"sms_sent": False, "sms_error": "Invalid phone number format"}
        assert sender.sent == []

    def test_sender_reports_failure(self):
        result = send_notification(
            "+5534998765432", "João", "test", "Hello", RecordingSender(success=False, error="Quota exceeded")
        )
        assert result == {"sms_sent": False, "sms_error": "Quota exceeded"}

    def test_sender_exception_is_captured(self):
        result = send_notification(
            "+5534998765432", "João", "test", "Hello", RecordingSender(raises=ConnectionError("timeout"))
        )
        assert result == {"sms_sent": False, "sms_error": "timeout"}


class TestMessages:
    def test_created_message(self):
        message = build_subscription_message(SUBSCRIPTION_CREATED, make_event())
        assert message.startswith("Hi João Silva! 🎉")
        assert "weekly subscription has been created" in message
        assert "5 appointments scheduled with Carlos" in message

    def test_cancelled_message_includes_reason(self):
        message = build_subscription_message(
            SUBSCRIPTION_CANCELLED, make_event(plan_type="BIWEEKLY", reason="Moving away")
        )
        assert "biweekly subscription with Carlos was cancelled" in message
        assert message.endswith("Reason: Moving away")

    @pytest.mark.parametrize("event_name", [SUBSCRIPTION_PAUSED, SUBSCRIPTION_RESUMED])
    def test_every_lifecycle_event_has_a_message(self, event_name):
        assert "João Silva" in build_subscription_message(event_name, make_event())

    def test_unknown_event(self):
        with pytest.raises(ValueError):
            build_subscription_message("subscription.renewed", make_event())


class TestListeners:
    def test_registers_all_lifecycle_events(self):
        dispatcher = SubscriptionEventDispatcher()
        register_subscription_listeners(dispatcher, RecordingSender(), enabled=True)

        for event_name in (SUBSCRIPTION_CREATED, SUBSCRIPTION_PAUSED, SUBSCRIPTION_RESUMED, SUBSCRIPTION_CANCELLED):
            handlers = dispatcher.handlers(event_name)
            assert [h.__name__ for h in handlers] == [f"notify_{event_name.replace('.', '_')}"]

    def test_disabled_listeners_send_nothing(self):
        sender = RecordingSender()
        dispatcher = SubscriptionEventDispatcher()
        register_subscription_listeners(dispatcher, sender, enabled=False)

        assert dispatcher.emit(SUBSCRIPTION_CREATED, make_event()) == 1
        assert sender.sent == []

    def test_subscription_lifecycle_messages(self, db, clock, make_request, client, barber, service):
        sender = RecordingSender()
        dispatcher = SubscriptionEventDispatcher()
        register_subscription_listeners(dispatcher, sender, enabled=True)
        subscription_service = SubscriptionService(db, dispatcher=dispatcher, clock=clock)

        created = subscription_service.create_subscription(make_request(client, barber, service))
        subscription_service.pause_subscription(created.id)
        subscription_service.resume_subscription(created.id, datetime(2025, 2, 1, 9, 0))
        subscription_service.cancel_subscription(created.id, "Moving away")

        phone = validate_br_mobile_phone(client.phone)
        assert [to for to, _message in sender.sent] == [phone] * 4
        assert "has been created" in sender.sent[0][1]
        assert "is paused" in sender.sent[1][1]
        assert "active again" in sender.sent[2][1]
        assert sender.sent[3][1].endswith("Reason: Moving away")

    def test_failing_sender_never_reaches_caller(self, db, clock, make_request, client, barber, service):
        dispatcher = SubscriptionEventDispatcher()
        register_subscription_listeners(dispatcher, RecordingSender(raises=RuntimeError("down")), enabled=True)
        subscription_service = SubscriptionService(db, dispatcher=dispatcher, clock=clock)

        created = subscription_service.create_subscription(make_request(client, barber, service))

        assert created.status == "ACTIVE"
