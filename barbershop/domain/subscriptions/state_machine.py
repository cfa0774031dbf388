"""
Subscription status transitions

    ACTIVE --pause--> PAUSED --resume--> ACTIVE
    ACTIVE --change_plan/update--> ACTIVE
    ACTIVE | PAUSED --cancel--> CANCELLED
    ACTIVE --complete--> COMPLETED   (completion sweep only)

CANCELLED and COMPLETED are terminal.
"""

from enum import Enum

from ...models_subscription import SubscriptionStatus
from .exceptions import InvalidStateError


class SubscriptionOperation(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    CHANGE_PLAN = "change_plan"
    UPDATE = "update"
    CANCEL = "cancel"
    COMPLETE = "complete"


TRANSITIONS = {
    (SubscriptionStatus.ACTIVE, SubscriptionOperation.PAUSE): SubscriptionStatus.PAUSED,
    (SubscriptionStatus.PAUSED, SubscriptionOperation.RESUME): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionOperation.CHANGE_PLAN): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionOperation.UPDATE): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionOperation.CANCEL): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.PAUSED, SubscriptionOperation.CANCEL): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.ACTIVE, SubscriptionOperation.COMPLETE): SubscriptionStatus.COMPLETED,
}

TERMINAL_STATUSES = frozenset({SubscriptionStatus.CANCELLED, SubscriptionStatus.COMPLETED})

_REJECTION_MESSAGES = {
    SubscriptionOperation.PAUSE: "Only active subscriptions can be paused",
    SubscriptionOperation.RESUME: "Only paused subscriptions can be resumed",
    SubscriptionOperation.CHANGE_PLAN: "Only active subscriptions can change plan",
    SubscriptionOperation.UPDATE: "Only active subscriptions can be edited",
    SubscriptionOperation.CANCEL: "Only active or paused subscriptions can be cancelled",
    SubscriptionOperation.COMPLETE: "Only active subscriptions can be completed",
}


def can_transition(current_status, operation: SubscriptionOperation) -> bool:
    return (SubscriptionStatus(current_status), operation) in TRANSITIONS


def next_status(current_status, operation: SubscriptionOperation) -> SubscriptionStatus:
    """
    Resolve the status an operation leads to.

    Raises:
        InvalidStateError: If the operation is not allowed from the current status
    """
    status = SubscriptionStatus(current_status)
    target = TRANSITIONS.get((status, operation))
    if target is None:
        detail = _REJECTION_MESSAGES[operation]
        if status == SubscriptionStatus.CANCELLED and operation == SubscriptionOperation.CANCEL:
            detail = "Subscription is already cancelled"
        raise InvalidStateError(
            f"{detail} (current status: {status.value})",
            current_status=status.value,
            operation=operation.value,
        )
    return target
