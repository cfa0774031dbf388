"""
Unit Tests for the subscription status state machine
"""

import pytest

from barbershop.domain.subscriptions.exceptions import InvalidStateError
from barbershop.domain.subscriptions.state_machine import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    SubscriptionOperation,
    can_transition,
    next_status,
)
from barbershop.models_subscription import SubscriptionStatus

ACTIVE = SubscriptionStatus.ACTIVE
PAUSED = SubscriptionStatus.PAUSED
CANCELLED = SubscriptionStatus.CANCELLED
COMPLETED = SubscriptionStatus.COMPLETED


class TestValidTransitions:
    @pytest.mark.parametrize(
        "status,operation,expected",
        [
            (ACTIVE, SubscriptionOperation.PAUSE, PAUSED),
            (PAUSED, SubscriptionOperation.RESUME, ACTIVE),
            (ACTIVE, SubscriptionOperation.CHANGE_PLAN, ACTIVE),
            (ACTIVE, SubscriptionOperation.UPDATE, ACTIVE),
            (ACTIVE, SubscriptionOperation.CANCEL, CANCELLED),
            (PAUSED, SubscriptionOperation.CANCEL, CANCELLED),
            (ACTIVE, SubscriptionOperation.COMPLETE, COMPLETED),
        ],
    )
    def test_allowed(self, status, operation, expected):
        assert next_status(status, operation) == expected
        assert next_status(status.value, operation) == expected
        assert can_transition(status, operation)


class TestInvalidTransitions:
    @pytest.mark.parametrize(
        "status,operation",
        [
            (PAUSED, SubscriptionOperation.PAUSE),
            (ACTIVE, SubscriptionOperation.RESUME),
            (PAUSED, SubscriptionOperation.CHANGE_PLAN),
            (PAUSED, SubscriptionOperation.UPDATE),
            (PAUSED, SubscriptionOperation.COMPLETE),
            (CANCELLED, SubscriptionOperation.RESUME),
            (COMPLETED, SubscriptionOperation.CANCEL),
        ],
    )
    def test_rejected(self, status, operation):
        assert not can_transition(status, operation)
        with pytest.raises(InvalidStateError) as exc_info:
            next_status(status, operation)
        assert exc_info.value.current_status == status.value
        assert exc_info.value.operation == operation.value
        assert status.value in exc_info.value.detail

    def test_cancelling_twice_has_specific_message(self):
        with pytest.raises(InvalidStateError) as exc_info:
            next_status(CANCELLED, SubscriptionOperation.CANCEL)
        assert exc_info.value.detail.startswith("Subscription is already cancelled")

    def test_pause_message(self):
        with pytest.raises(InvalidStateError) as exc_info:
            next_status(PAUSED, SubscriptionOperation.PAUSE)
        assert exc_info.value.detail.startswith("Only active subscriptions can be paused")


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
def test_terminal_statuses_have_no_way_out(status):
    assert all(source != status for source, _operation in TRANSITIONS)
    assert all(not can_transition(status, op) for op in SubscriptionOperation)
