"""Subscription domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...config import SUBSCRIPTION_MAX_DURATION_MONTHS
from ...models_subscription import PlanType
from ...shared.time_utils import to_naive_utc
from ...shared.validators import validate_reason


class PreviewSubscriptionRequest(BaseModel):
    """Schema for previewing a subscription schedule"""

    clientId: int
    barberId: int
    serviceId: int
    planType: PlanType
    startDate: datetime
    durationMonths: int
    notes: Optional[str] = None

    @field_validator("startDate")
    @classmethod
    def normalize_start_date(cls, v):
        return to_naive_utc(v)

    @field_validator("durationMonths")
    @classmethod
    def validate_duration(cls, v):
        if v < 1 or v > SUBSCRIPTION_MAX_DURATION_MONTHS:
            raise ValueError(
                f"Duration must be between 1 and {SUBSCRIPTION_MAX_DURATION_MONTHS} months"
            )
        return v


class CreateSubscriptionRequest(PreviewSubscriptionRequest):
    """Schema for creating a subscription (same fields as the preview)"""


class SlotAdjustment(BaseModel):
    """Override of one slot's date, used to resolve a preview conflict"""

    slotIndex: int
    newDate: datetime
    reason: Optional[str] = None

    @field_validator("slotIndex")
    @classmethod
    def validate_slot_index(cls, v):
        if v < 0:
            raise ValueError("Slot index must not be negative")
        return v

    @field_validator("newDate")
    @classmethod
    def normalize_new_date(cls, v):
        return to_naive_utc(v)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v):
        return validate_reason(v)


class AdjustSlotsRequest(BaseModel):
    """Schema for per-slot date overrides applied at creation"""

    adjustments: list[SlotAdjustment] = []

    @field_validator("adjustments")
    @classmethod
    def validate_unique_slots(cls, v):
        indexes = [a.slotIndex for a in v]
        if len(indexes) != len(set(indexes)):
            raise ValueError("Each slot can only be adjusted once")
        return v


class UpdateSubscriptionRequest(BaseModel):
    """Schema for updating an active subscription"""

    planType: Optional[PlanType] = None
    notes: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v):
        return validate_reason(v)


class PauseSubscriptionRequest(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v):
        return validate_reason(v)


class ResumeSubscriptionRequest(BaseModel):
    newStartDate: datetime
    reason: Optional[str] = None

    @field_validator("newStartDate")
    @classmethod
    def normalize_start_date(cls, v):
        return to_naive_utc(v)

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v):
        return validate_reason(v)


class CancelSubscriptionRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def require_reason(cls, v):
        return validate_reason(v, required=True)


class ConflictDetails(BaseModel):
    existingAppointmentId: int
    existingClientName: str
    existingStartTime: datetime
    existingEndTime: datetime


class SlotPreview(BaseModel):
    slotIndex: int
    date: datetime
    barberId: int
    barberName: str
    serviceId: int
    serviceName: str
    duration: int
    hasConflict: bool
    conflictDetails: Optional[ConflictDetails] = None


class SubscriptionSummary(BaseModel):
    planType: PlanType
    startDate: datetime
    endDate: datetime
    durationMonths: int
    totalSlots: int
    intervalDays: int


class SubscriptionPreviewResponse(BaseModel):
    subscription: SubscriptionSummary
    appointments: list[SlotPreview]
    hasAnyConflict: bool
    conflictCount: int

    @property
    def conflicting_slots(self) -> list[SlotPreview]:
        return [a for a in self.appointments if a.hasConflict]
