"""Calendar arithmetic for subscription schedules. No I/O."""

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from ...models_subscription import PlanType
from .exceptions import InvalidScheduleError

PLAN_INTERVAL_DAYS = {
    PlanType.WEEKLY: 7,
    PlanType.BIWEEKLY: 14,
}


def interval_days(plan_type) -> int:
    """Days between consecutive slots for a plan type"""
    try:
        return PLAN_INTERVAL_DAYS[PlanType(plan_type)]
    except ValueError:
        raise InvalidScheduleError(f"Unknown plan type: {plan_type}") from None


def calculate_end_date(start_date: datetime, duration_months: int) -> datetime:
    """
    Add whole calendar months to the start date.

    Month-end overflow is clamped to the last day of the target month,
    so Jan 31 + 1 month is Feb 28 (or Feb 29 in leap years).
    """
    if duration_months < 0:
        raise InvalidScheduleError("Duration must not be negative")
    return start_date + relativedelta(months=duration_months)


def calculate_total_slots(start_date: datetime, end_date: datetime, interval: int) -> int:
    """Slots in [start, end]; the +1 counts the start date itself"""
    _check_interval(interval)
    if end_date < start_date:
        raise InvalidScheduleError("End date must not be before start date")
    total_days = (end_date - start_date).days
    return total_days // interval + 1


def generate_slot_dates(start_date: datetime, total_slots: int, interval: int) -> list[datetime]:
    """start + i * interval for each slot, keeping the start's time of day"""
    _check_interval(interval)
    if total_slots < 0:
        raise InvalidScheduleError("Slot count must not be negative")
    step = timedelta(days=interval)
    return [start_date + i * step for i in range(total_slots)]


def recalculate_slot_dates(count: int, new_plan_type, new_start_date: datetime) -> list[datetime]:
    """Regenerate `count` slot dates from a new anchor using the new plan's interval"""
    return generate_slot_dates(new_start_date, count, interval_days(new_plan_type))


def _check_interval(interval: int) -> None:
    if interval <= 0:
        raise InvalidScheduleError("Interval must be a positive number of days")
