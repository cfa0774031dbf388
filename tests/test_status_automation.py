"""
Tests for the ACTIVE -> COMPLETED sweep
"""

from datetime import datetime

from barbershop.models_subscription import Appointment, Subscription, SubscriptionChangeLog
from barbershop.services.status_automation import complete_finished_subscriptions

AFTER_LAST_SLOT = datetime(2025, 1, 5, 8, 0)


def close_slots(db, subscription_id, status="COMPLETED"):
    for slot in db.query(Appointment).filter_by(subscription_id=subscription_id):
        slot.status = status
    db.commit()


def test_finished_subscription_is_completed(db, subscription):
    close_slots(db, subscription.id)

    summary = complete_finished_subscriptions(db, now=AFTER_LAST_SLOT)

    assert summary == {"checked": 1, "active_to_completed": 1, "completed_ids": [subscription.id]}
    db.expire_all()
    completed = db.get(Subscription, subscription.id)
    assert completed.status == "COMPLETED"
    assert completed.completed_at == AFTER_LAST_SLOT

    entry = db.query(SubscriptionChangeLog).filter_by(subscription_id=subscription.id, change_type="COMPLETED").one()
    assert entry.old_value == {"status": "ACTIVE"}
    assert entry.new_value == {"status": "COMPLETED"}


def test_no_shows_count_as_played_out(db, subscription):
    close_slots(db, subscription.id, status="NO_SHOW")
    summary = complete_finished_subscriptions(db, now=AFTER_LAST_SLOT)
    assert summary["completed_ids"] == [subscription.id]


def test_open_slots_keep_subscription_active(db, subscription):
    summary = complete_finished_subscriptions(db, now=AFTER_LAST_SLOT)

    assert summary == {"checked": 0, "active_to_completed": 0, "completed_ids": []}
    assert db.get(Subscription, subscription.id).status == "ACTIVE"


def test_last_slot_in_future_is_skipped(db, subscription):
    close_slots(db, subscription.id)

    summary = complete_finished_subscriptions(db, now=datetime(2024, 12, 20, 8, 0))

    assert summary["checked"] == 1
    assert summary["active_to_completed"] == 0
    assert db.get(Subscription, subscription.id).status == "ACTIVE"


def test_paused_subscription_is_left_alone(db, subscription, subscription_service):
    subscription_service.pause_subscription(subscription.id)

    summary = complete_finished_subscriptions(db, now=AFTER_LAST_SLOT)

    assert summary["checked"] == 0
    assert db.get(Subscription, subscription.id).status == "PAUSED"
