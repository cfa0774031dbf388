"""
Automated status transitions for subscriptions
Handles ACTIVE → COMPLETED once every slot of a subscription has played out
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import exists
from sqlalchemy.orm import Session

from ..domain.subscriptions.change_log import StatusPayload, build_change_log
from ..domain.subscriptions.state_machine import SubscriptionOperation, next_status
from ..models_subscription import (
    OPEN_APPOINTMENT_STATUSES,
    Appointment,
    ChangeType,
    Subscription,
    SubscriptionStatus,
)
from ..shared.time_utils import utcnow

logger = logging.getLogger(__name__)


def complete_finished_subscriptions(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Mark ACTIVE subscriptions COMPLETED when nothing is left to attend.
    Should be run as a scheduled job (e.g., daily cron)

    A subscription is finished when it has no SCHEDULED/IN_PROGRESS slot and its
    latest slot date is in the past. Subscriptions without any slot are left alone.

    Returns:
        dict: Summary of status changes made
    """
    now = now or utcnow()
    summary = {"checked": 0, "active_to_completed": 0, "completed_ids": []}

    try:
        has_open_slot = exists().where(
            Appointment.subscription_id == Subscription.id,
            Appointment.status.in_(OPEN_APPOINTMENT_STATUSES),
        )
        candidates = (
            db.query(Subscription)
            .filter(Subscription.status == SubscriptionStatus.ACTIVE.value, ~has_open_slot)
            .all()
        )

        for subscription in candidates:
            summary["checked"] += 1
            last_slot = (
                db.query(Appointment)
                .filter(Appointment.subscription_id == subscription.id)
                .order_by(Appointment.date.desc())
                .first()
            )
            if last_slot is None or last_slot.date > now:
                continue

            target = next_status(subscription.status, SubscriptionOperation.COMPLETE)
            subscription.status = target.value
            subscription.completed_at = now
            db.add(
                build_change_log(
                    subscription.id,
                    ChangeType.COMPLETED,
                    f"Subscription completed after its last appointment on {last_slot.date:%Y-%m-%d}",
                    old_value=StatusPayload(status=SubscriptionStatus.ACTIVE),
                    new_value=StatusPayload(status=target),
                )
            )
            summary["active_to_completed"] += 1
            summary["completed_ids"].append(subscription.id)
            logger.info(f"✅ Subscription {subscription.id} transitioned: ACTIVE → COMPLETED")

        if summary["active_to_completed"] > 0:
            db.commit()
            logger.info(f"📊 Subscription completion summary: {summary}")
        else:
            logger.debug("ℹ️ No subscription status updates needed")

        return summary

    except Exception as e:
        logger.error(f"❌ Error completing subscriptions: {str(e)}")
        db.rollback()
        raise
