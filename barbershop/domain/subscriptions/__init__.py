"""
Subscriptions Domain

Recurring WEEKLY/BIWEEKLY bookings between a client and a fixed barber/service.

Structure:
- date_calculator.py    Pure calendar arithmetic (end date, slot count, slot dates)
- conflict_detector.py  Overlap checks against the barber's open bookings
- state_machine.py      Status transition table (ACTIVE, PAUSED, CANCELLED, COMPLETED)
- change_log.py         Typed old/new payloads for the append-only change log
- events.py             Post-commit lifecycle events and their dispatcher
- repository.py         Database operations and the transaction boundary
- service.py            Preview, create, change plan, pause, resume, cancel
"""

from .events import SubscriptionEvent, SubscriptionEventDispatcher
from .exceptions import (
    ActiveSubscriptionExistsError,
    InvalidAdjustmentError,
    InvalidScheduleError,
    InvalidStateError,
    NotFoundError,
    SchedulingConflictError,
    SlotsExhaustedError,
    SubscriptionError,
    UnavailableError,
)
from .service import SubscriptionService

__all__ = [
    "SubscriptionService",
    "SubscriptionEvent",
    "SubscriptionEventDispatcher",
    "SubscriptionError",
    "NotFoundError",
    "UnavailableError",
    "ActiveSubscriptionExistsError",
    "SchedulingConflictError",
    "InvalidStateError",
    "SlotsExhaustedError",
    "InvalidAdjustmentError",
    "InvalidScheduleError",
]
