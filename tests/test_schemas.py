"""
Unit Tests for subscription request validation
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from barbershop.domain.subscriptions.schemas import (
    AdjustSlotsRequest,
    CancelSubscriptionRequest,
    PauseSubscriptionRequest,
    PreviewSubscriptionRequest,
    ResumeSubscriptionRequest,
    SlotAdjustment,
)
from barbershop.models_subscription import PlanType


def preview_payload(**overrides):
    payload = {
        "clientId": 1,
        "barberId": 2,
        "serviceId": 3,
        "planType": "WEEKLY",
        "startDate": "2024-12-02T09:00:00",
        "durationMonths": 1,
    }
    payload.update(overrides)
    return payload


class TestPreviewRequest:
    def test_valid_request(self):
        request = PreviewSubscriptionRequest(**preview_payload())
        assert request.planType == PlanType.WEEKLY
        assert request.startDate == datetime(2024, 12, 2, 9, 0)

    @pytest.mark.parametrize("months", [0, 7, -1])
    def test_duration_out_of_range(self, months):
        with pytest.raises(ValidationError):
            PreviewSubscriptionRequest(**preview_payload(durationMonths=months))

    def test_unknown_plan_type(self):
        with pytest.raises(ValidationError):
            PreviewSubscriptionRequest(**preview_payload(planType="MONTHLY"))

    def test_aware_start_date_is_converted_to_utc(self):
        sao_paulo = timezone(timedelta(hours=-3))
        request = PreviewSubscriptionRequest(
            **preview_payload(startDate=datetime(2024, 12, 2, 6, 0, tzinfo=sao_paulo))
        )
        assert request.startDate == datetime(2024, 12, 2, 9, 0)
        assert request.startDate.tzinfo is None


class TestAdjustments:
    def test_negative_slot_index(self):
        with pytest.raises(ValidationError):
            SlotAdjustment(slotIndex=-1, newDate=datetime(2024, 12, 10, 9, 0))

    def test_slot_adjusted_twice(self):
        with pytest.raises(ValidationError):
            AdjustSlotsRequest(
                adjustments=[
                    {"slotIndex": 1, "newDate": "2024-12-10T09:00:00"},
                    {"slotIndex": 1, "newDate": "2024-12-11T09:00:00"},
                ]
            )

    def test_blank_reason_becomes_none(self):
        adjustment = SlotAdjustment(slotIndex=1, newDate=datetime(2024, 12, 10, 9, 0), reason="   ")
        assert adjustment.reason is None


class TestLifecycleRequests:
    @pytest.mark.parametrize("reason", ["", "   "])
    def test_cancel_requires_reason(self, reason):
        with pytest.raises(ValidationError):
            CancelSubscriptionRequest(reason=reason)

    def test_cancel_reason_is_stripped(self):
        assert CancelSubscriptionRequest(reason="  Moved away ").reason == "Moved away"

    def test_resume_requires_start_date(self):
        with pytest.raises(ValidationError):
            ResumeSubscriptionRequest()

    def test_pause_reason_is_optional(self):
        assert PauseSubscriptionRequest().reason is None
        assert PauseSubscriptionRequest(reason="  ").reason is None
        assert PauseSubscriptionRequest(reason=" Vacation ").reason == "Vacation"
