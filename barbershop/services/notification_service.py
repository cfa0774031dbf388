"""
Subscription Notification Listeners
Turns subscription lifecycle events into client messages (WhatsApp/SMS)
Delivery itself is done by the injected sender; failures never reach the caller
"""

import logging
from typing import Callable, Optional

from ..config import SUBSCRIPTION_NOTIFICATIONS_ENABLED
from ..domain.subscriptions.events import (
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_PAUSED,
    SUBSCRIPTION_RESUMED,
    SubscriptionEvent,
    SubscriptionEventDispatcher,
)
from ..shared.validators import validate_br_mobile_phone

logger = logging.getLogger(__name__)

# sender(to_phone, message_body) -> (success, error_message)
MessageSender = Callable[[str, str], tuple[bool, Optional[str]]]

PLAN_LABELS = {"WEEKLY": "weekly", "BIWEEKLY": "biweekly"}


def send_notification(
    client_phone: Optional[str],
    client_name: str,
    notification_type: str,
    message: str,
    sms_func: MessageSender,
) -> dict:
    """
    Send one message to a client, recording the outcome instead of raising

    Args:
        client_phone: Client phone number (any format)
        client_name: Client name for logging
        notification_type: Type of notification (for logging)
        message: Message body
        sms_func: Sender returning (success, error)

    Returns:
        Dict with sms_sent status and sms_error
    """
    result = {"sms_sent": False, "sms_error": None}

    if not client_phone:
        logger.debug(f"⚠️ No phone number for {notification_type} message to {client_name}")
        result["sms_error"] = "No phone number provided"
        return result

    try:
        formatted_phone = validate_br_mobile_phone(client_phone)
    except ValueError:
        logger.warning(f"⚠️ Invalid phone number format for {client_name}: {client_phone}")
        result["sms_error"] = "Invalid phone number format"
        return result

    try:
        logger.info(f"📱 Sending {notification_type} message to {formatted_phone}")
        success, error = sms_func(formatted_phone, message)
        if success:
            result["sms_sent"] = True
            logger.info(f"✅ {notification_type} message sent to {formatted_phone}")
        else:
            result["sms_error"] = error
            logger.warning(f"⚠️ {notification_type} message not sent to {formatted_phone}: {error}")
    except Exception as e:
        result["sms_error"] = str(e)
        logger.error(f"❌ Failed to send {notification_type} message to {formatted_phone}: {e}")

    return result


def build_subscription_message(event_name: str, event: SubscriptionEvent) -> str:
    plan = PLAN_LABELS.get(event.plan_type, event.plan_type.lower())

    if event_name == SUBSCRIPTION_CREATED:
        return (
            f"Hi {event.client_name}! 🎉\n\n"
            f"Your {plan} subscription has been created!\n\n"
            f"You have {event.total_slots} appointments scheduled with {event.barber_name}.\n\n"
            "Thank you for choosing us!"
        )
    if event_name == SUBSCRIPTION_PAUSED:
        return (
            f"Hi {event.client_name}, your {plan} subscription with {event.barber_name} is paused. "
            "Your upcoming appointments were cancelled; we'll reschedule them when you resume."
        )
    if event_name == SUBSCRIPTION_RESUMED:
        return (
            f"Hi {event.client_name}, welcome back! Your {plan} subscription with "
            f"{event.barber_name} is active again and your appointments have been rescheduled."
        )
    if event_name == SUBSCRIPTION_CANCELLED:
        message = f"Hi {event.client_name}, your {plan} subscription with {event.barber_name} was cancelled."
        if event.reason:
            message += f"\nReason: {event.reason}"
        return message

    raise ValueError(f"No message template for {event_name}")


def register_subscription_listeners(
    dispatcher: SubscriptionEventDispatcher,
    sms_func: MessageSender,
    enabled: bool = SUBSCRIPTION_NOTIFICATIONS_ENABLED,
) -> None:
    """Wire client messages for all four subscription lifecycle events"""

    def make_handler(event_name: str):
        def handle(event: SubscriptionEvent) -> None:
            logger.info(f"📣 {event_name}: subscription {event.subscription_id}")
            if not enabled:
                logger.debug(f"ℹ️ Subscription notifications disabled, skipping {event_name}")
                return
            send_notification(
                client_phone=event.client_phone,
                client_name=event.client_name,
                notification_type=event_name,
                message=build_subscription_message(event_name, event),
                sms_func=sms_func,
            )

        handle.__name__ = f"notify_{event_name.replace('.', '_')}"
        return handle

    for event_name in (
        SUBSCRIPTION_CREATED,
        SUBSCRIPTION_PAUSED,
        SUBSCRIPTION_RESUMED,
        SUBSCRIPTION_CANCELLED,
    ):
        dispatcher.register(event_name, make_handler(event_name))
