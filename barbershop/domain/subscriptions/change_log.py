"""Typed payloads for the subscription change log.

Every change type has a fixed payload shape for its old/new values. Entries are
built through `build_change_log`, which rejects mismatched payloads before they
reach the JSON columns.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...models_subscription import ChangeType, PlanType, SubscriptionChangeLog, SubscriptionStatus


class CreatedPayload(BaseModel):
    planType: PlanType
    serviceId: int
    serviceName: str
    startDate: datetime
    endDate: datetime
    totalSlots: int


class PlanChangedPayload(BaseModel):
    planType: PlanType
    rescheduledSlots: Optional[int] = None


class SlotDatePayload(BaseModel):
    slotIndex: int
    date: datetime


class StatusPayload(BaseModel):
    status: SubscriptionStatus
    affectedSlots: Optional[int] = None


class ResumedPayload(BaseModel):
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    newStartDate: datetime
    remainingSlots: int


# change type -> (old_value model, new_value model); None means the side stays empty
PAYLOAD_SCHEMAS = {
    ChangeType.CREATED: (None, CreatedPayload),
    ChangeType.PLAN_CHANGED: (PlanChangedPayload, PlanChangedPayload),
    ChangeType.APPOINTMENT_ADJUSTED: (SlotDatePayload, SlotDatePayload),
    ChangeType.PAUSED: (StatusPayload, StatusPayload),
    ChangeType.RESUMED: (StatusPayload, ResumedPayload),
    ChangeType.CANCELLED: (StatusPayload, StatusPayload),
    ChangeType.COMPLETED: (StatusPayload, StatusPayload),
}


def _dump(payload: Optional[BaseModel], expected, side: str, change_type: ChangeType):
    if payload is None:
        return None
    if expected is None or not isinstance(payload, expected):
        expected_name = expected.__name__ if expected else "no payload"
        raise TypeError(
            f"{change_type.value} {side} must be {expected_name}, got {type(payload).__name__}"
        )
    return payload.model_dump(mode="json", exclude_none=True)


def build_change_log(
    subscription_id: int,
    change_type: ChangeType,
    description: str,
    old_value: Optional[BaseModel] = None,
    new_value: Optional[BaseModel] = None,
    reason: Optional[str] = None,
) -> SubscriptionChangeLog:
    """Create an unsaved change-log row after checking the payload shapes"""
    change_type = ChangeType(change_type)
    old_schema, new_schema = PAYLOAD_SCHEMAS[change_type]
    return SubscriptionChangeLog(
        subscription_id=subscription_id,
        change_type=change_type.value,
        description=description,
        old_value=_dump(old_value, old_schema, "old_value", change_type),
        new_value=_dump(new_value, new_schema, "new_value", change_type),
        reason=reason,
    )


def parse_payloads(entry: SubscriptionChangeLog) -> tuple[Optional[BaseModel], Optional[BaseModel]]:
    """Read a stored entry's old/new values back into their payload models"""
    old_schema, new_schema = PAYLOAD_SCHEMAS[ChangeType(entry.change_type)]
    old = old_schema.model_validate(entry.old_value) if old_schema and entry.old_value else None
    new = new_schema.model_validate(entry.new_value) if new_schema and entry.new_value else None
    return old, new
