"""Subscription lifecycle events

Events are emitted after a mutation commits. Delivery is fire-and-forget: a
failing handler is logged and never propagates to the caller.
"""

import logging
from collections import defaultdict
from typing import Callable, Optional

from pydantic import BaseModel

from ...models_subscription import Subscription

logger = logging.getLogger(__name__)

SUBSCRIPTION_CREATED = "subscription.created"
SUBSCRIPTION_PAUSED = "subscription.paused"
SUBSCRIPTION_RESUMED = "subscription.resumed"
SUBSCRIPTION_CANCELLED = "subscription.cancelled"

SUBSCRIPTION_EVENTS = (
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_PAUSED,
    SUBSCRIPTION_RESUMED,
    SUBSCRIPTION_CANCELLED,
)


class SubscriptionEvent(BaseModel):
    subscription_id: int
    client_id: int
    client_name: str
    client_phone: Optional[str] = None
    barber_id: int
    barber_name: str
    total_slots: int
    plan_type: str
    reason: Optional[str] = None

    @classmethod
    def from_subscription(cls, subscription: Subscription, reason: Optional[str] = None) -> "SubscriptionEvent":
        return cls(
            subscription_id=subscription.id,
            client_id=subscription.client_id,
            client_name=subscription.client.name,
            client_phone=subscription.client.phone,
            barber_id=subscription.barber_id,
            barber_name=subscription.barber.name,
            total_slots=subscription.total_slots,
            plan_type=subscription.plan_type,
            reason=reason,
        )


EventHandler = Callable[[SubscriptionEvent], None]


class SubscriptionEventDispatcher:
    """In-process dispatcher; handlers run synchronously in registration order"""

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def register(self, event_name: str, handler: EventHandler) -> None:
        if event_name not in SUBSCRIPTION_EVENTS:
            raise ValueError(f"Unknown subscription event: {event_name}")
        self._handlers[event_name].append(handler)

    def handlers(self, event_name: str) -> list[EventHandler]:
        return list(self._handlers.get(event_name, []))

    def emit(self, event_name: str, event: SubscriptionEvent) -> int:
        """Deliver an event; returns the number of handlers that succeeded"""
        delivered = 0
        for handler in self.handlers(event_name):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"❌ Handler {getattr(handler, '__name__', handler)!s} failed for "
                    f"{event_name} (subscription {event.subscription_id}): {e}"
                )
        return delivered
