"""Subscription domain errors

Each error carries an HTTP-style ``status_code`` and a ``detail`` message so an API
layer can translate it without inspecting the type.
"""

from typing import Optional


class SubscriptionError(Exception):
    """Base class for subscription business errors"""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(SubscriptionError):
    status_code = 404


class UnavailableError(NotFoundError):
    """Barber or service exists but is inactive"""


class ActiveSubscriptionExistsError(SubscriptionError):
    status_code = 409

    def __init__(self, client_id: int, detail: Optional[str] = None):
        super().__init__(
            detail
            or "Client already has an active subscription. Only one active subscription per client is allowed."
        )
        self.client_id = client_id


class SchedulingConflictError(SubscriptionError):
    """One or more candidate slots overlap an existing booking"""

    def __init__(self, detail: str, conflicts: list):
        super().__init__(detail)
        self.conflicts = conflicts

    @property
    def slot_indexes(self) -> list[int]:
        return [c.slot_index for c in self.conflicts]


class InvalidStateError(SubscriptionError):
    def __init__(self, detail: str, current_status: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(detail)
        self.current_status = current_status
        self.operation = operation


class SlotsExhaustedError(SubscriptionError):
    """Resume attempted with no slots left to schedule"""


class InvalidScheduleError(ValueError):
    """Invalid input to the date calculator (negative duration, bad interval...)"""


class InvalidAdjustmentError(SubscriptionError):
    """Adjustment refers to a slot index outside the computed schedule"""
