"""Subscription service - Scheduling workflows and lifecycle of recurring subscriptions"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import CHANGE_LOG_DETAIL_LIMIT, DEFAULT_SERVICE_DURATION_MINUTES
from ...models import Barber, Client, Service
from ...models_subscription import (
    OPEN_APPOINTMENT_STATUSES,
    AppointmentStatus,
    ChangeType,
    PlanType,
    Subscription,
    SubscriptionStatus,
)
from ...shared.time_utils import to_naive_utc, utcnow
from ...shared.validators import validate_reason
from . import date_calculator
from .change_log import (
    CreatedPayload,
    PlanChangedPayload,
    ResumedPayload,
    SlotDatePayload,
    StatusPayload,
    build_change_log,
)
from .conflict_detector import ConflictCheckResult, ConflictDetector
from .events import (
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_PAUSED,
    SUBSCRIPTION_RESUMED,
    SubscriptionEvent,
    SubscriptionEventDispatcher,
)
from .exceptions import (
    ActiveSubscriptionExistsError,
    InvalidAdjustmentError,
    NotFoundError,
    SchedulingConflictError,
    SlotsExhaustedError,
    SubscriptionError,
    UnavailableError,
)
from .repository import SubscriptionRepository
from .schemas import (
    AdjustSlotsRequest,
    ConflictDetails,
    CreateSubscriptionRequest,
    PreviewSubscriptionRequest,
    SlotPreview,
    SubscriptionPreviewResponse,
    SubscriptionSummary,
    UpdateSubscriptionRequest,
)
from .state_machine import SubscriptionOperation, next_status

logger = logging.getLogger(__name__)

ACTIVE_INDEX_NAME = "uq_subscriptions_client_active"


def _is_active_subscription_violation(error: IntegrityError) -> bool:
    """True when the partial unique index on ACTIVE subscriptions rejected a write"""
    message = str(error.orig)
    return ACTIVE_INDEX_NAME in message or "subscriptions.client_id" in message


class SubscriptionService:
    """Service layer for subscription business logic"""

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[SubscriptionEventDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.repo = SubscriptionRepository()
        self.conflict_detector = ConflictDetector(db, self.repo)
        self.dispatcher = dispatcher
        self.clock = clock

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_subscription(self, subscription_id: int) -> Subscription:
        subscription = self.repo.get_subscription(self.db, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    def get_subscription_detail(self, subscription_id: int) -> dict:
        """Subscription with every slot (by index) and its most recent change-log entries"""
        subscription = self.get_subscription(subscription_id)
        appointments = self.repo.get_subscription_appointments(self.db, subscription.id)
        change_logs = self.repo.get_change_logs(self.db, subscription.id, CHANGE_LOG_DETAIL_LIMIT)

        completed = sum(1 for a in appointments if a.status == AppointmentStatus.COMPLETED.value)
        detail = self._serialize_subscription(subscription, completed)
        detail["appointments"] = [self._serialize_appointment(a) for a in appointments]
        detail["changeLogs"] = [
            {
                "id": entry.id,
                "changeType": entry.change_type,
                "description": entry.description,
                "oldValue": entry.old_value,
                "newValue": entry.new_value,
                "reason": entry.reason,
                "createdAt": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in change_logs
        ]
        return detail

    def list_subscriptions(
        self,
        skip: int = 0,
        take: int = 50,
        client_id: Optional[int] = None,
        barber_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> dict:
        """List subscriptions with progress (completed slots) and upcoming slots"""
        if status:
            status = SubscriptionStatus(status).value

        subscriptions, total = self.repo.list_subscriptions(
            self.db, skip=skip, take=take, client_id=client_id, barber_id=barber_id, status=status
        )
        completed_counts = self.repo.count_completed_slots(self.db, [s.id for s in subscriptions])

        items = []
        for subscription in subscriptions:
            item = self._serialize_subscription(subscription, completed_counts.get(subscription.id, 0))
            upcoming = self.repo.get_subscription_appointments(
                self.db, subscription.id, OPEN_APPOINTMENT_STATUSES
            )
            item["upcomingAppointments"] = [
                self._serialize_appointment(a) for a in sorted(upcoming, key=lambda a: a.date)
            ]
            items.append(item)

        return {"subscriptions": items, "total": total}

    # ========================================================================
    # PREVIEW & CREATE
    # ========================================================================

    def preview_subscription(self, request: PreviewSubscriptionRequest) -> SubscriptionPreviewResponse:
        """Compute the full schedule and its conflicts without writing anything"""
        self._ensure_no_active_subscription(request.clientId)
        _client, barber, service = self._load_entities(request)
        return self._build_preview(request, barber, service)

    def create_subscription(
        self,
        request: CreateSubscriptionRequest,
        adjustments: Optional[AdjustSlotsRequest] = None,
    ) -> Subscription:
        """
        Persist a subscription and all of its slots in one transaction.

        Caller adjustments (slot index -> new date) are applied on top of the
        preview, and conflicts are re-checked on the final dates before writing.
        """
        # Re-validate right before committing; the partial unique index backs this up
        self._ensure_no_active_subscription(request.clientId)

        _client, barber, service = self._load_entities(request)
        preview = self._build_preview(request, barber, service)
        duration = self._service_duration(service)

        original_dates = [slot.date for slot in preview.appointments]
        final_dates = list(original_dates)
        applied = adjustments.adjustments if adjustments else []
        for adjustment in applied:
            if adjustment.slotIndex >= len(final_dates):
                raise InvalidAdjustmentError(
                    f"Slot #{adjustment.slotIndex} does not exist "
                    f"(subscription has {len(final_dates)} slots)"
                )
            final_dates[adjustment.slotIndex] = adjustment.newDate

        results = self.conflict_detector.check_multiple_conflicts(barber.id, final_dates, duration)
        self._raise_on_conflicts(
            results, "There are still conflicts in the adjusted dates. Please adjust the conflicting slots."
        )

        summary = preview.subscription
        try:
            with self.repo.transaction(self.db):
                subscription = self.repo.create_subscription(
                    self.db,
                    client_id=request.clientId,
                    barber_id=barber.id,
                    service_id=service.id,
                    plan_type=summary.planType.value,
                    start_date=summary.startDate,
                    end_date=summary.endDate,
                    duration_months=summary.durationMonths,
                    total_slots=summary.totalSlots,
                    status=SubscriptionStatus.ACTIVE.value,
                    notes=request.notes,
                )

                for index, date in enumerate(final_dates):
                    self.repo.create_appointment(
                        self.db,
                        client_id=request.clientId,
                        barber_id=barber.id,
                        service_id=service.id,
                        subscription_id=subscription.id,
                        is_subscription_based=True,
                        subscription_slot_index=index,
                        date=date,
                        status=AppointmentStatus.SCHEDULED.value,
                    )

                self.repo.add_change_log(
                    self.db,
                    build_change_log(
                        subscription.id,
                        ChangeType.CREATED,
                        f"Subscription created with {summary.totalSlots} appointments ({summary.planType.value})",
                        new_value=CreatedPayload(
                            planType=summary.planType,
                            serviceId=service.id,
                            serviceName=service.name,
                            startDate=summary.startDate,
                            endDate=summary.endDate,
                            totalSlots=summary.totalSlots,
                        ),
                    ),
                )

                for adjustment in applied:
                    self.repo.add_change_log(
                        self.db,
                        build_change_log(
                            subscription.id,
                            ChangeType.APPOINTMENT_ADJUSTED,
                            f"Appointment #{adjustment.slotIndex} adjusted during creation",
                            old_value=SlotDatePayload(
                                slotIndex=adjustment.slotIndex, date=original_dates[adjustment.slotIndex]
                            ),
                            new_value=SlotDatePayload(slotIndex=adjustment.slotIndex, date=adjustment.newDate),
                            reason=adjustment.reason,
                        ),
                    )
        except IntegrityError as e:
            if _is_active_subscription_violation(e):
                logger.warning(f"⚠️ Concurrent subscription create rejected for client {request.clientId}")
                raise ActiveSubscriptionExistsError(request.clientId) from e
            raise

        logger.info(
            f"✅ Subscription {subscription.id} created for client {request.clientId}: "
            f"{summary.totalSlots} slots, {len(applied)} adjusted"
        )
        self._emit(SUBSCRIPTION_CREATED, subscription)
        return self.get_subscription(subscription.id)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def update_subscription(self, subscription_id: int, request: UpdateSubscriptionRequest) -> Subscription:
        """Change the plan (rescheduling open slots) or just the notes"""
        subscription = self.get_subscription(subscription_id)
        next_status(subscription.status, SubscriptionOperation.UPDATE)

        if request.planType and request.planType.value != subscription.plan_type:
            return self.change_plan_type(subscription_id, request.planType, request.reason)

        if request.notes is not None:
            with self.repo.transaction(self.db):
                self.repo.update_subscription(self.db, subscription, notes=request.notes)
        return self.get_subscription(subscription_id)

    def change_plan_type(self, subscription_id: int, new_plan_type, reason: Optional[str] = None) -> Subscription:
        """
        Switch WEEKLY/BIWEEKLY and re-space every open slot from the earliest one.
        Terminal slots (TERMINAL_APPOINTMENT_STATUSES) and CANCELLED slots keep their dates.
        """
        subscription = self.get_subscription(subscription_id)
        next_status(subscription.status, SubscriptionOperation.CHANGE_PLAN)
        new_plan_type = PlanType(new_plan_type)
        old_plan_type = subscription.plan_type
        reason = validate_reason(reason)

        open_slots = self.repo.get_subscription_appointments(
            self.db, subscription.id, OPEN_APPOINTMENT_STATUSES
        )
        if not open_slots:
            raise SlotsExhaustedError("There are no upcoming appointments to recalculate")

        anchor = min(slot.date for slot in open_slots)
        new_dates = date_calculator.recalculate_slot_dates(len(open_slots), new_plan_type, anchor)

        # The subscription's own open slots are being moved, so they can't block the new dates
        results = self.conflict_detector.check_multiple_conflicts(
            subscription.barber_id,
            new_dates,
            self._service_duration(subscription.service),
            exclude_subscription_id=subscription.id,
        )
        self._raise_on_conflicts(
            results, "The new dates have conflicts. Please adjust manually or choose another plan."
        )

        with self.repo.transaction(self.db):
            self.repo.update_subscription(self.db, subscription, plan_type=new_plan_type.value)
            for slot, new_date in zip(open_slots, new_dates):
                self.repo.update_appointment(self.db, slot, date=new_date)
            self.repo.add_change_log(
                self.db,
                build_change_log(
                    subscription.id,
                    ChangeType.PLAN_CHANGED,
                    f"Plan changed from {old_plan_type} to {new_plan_type.value}",
                    old_value=PlanChangedPayload(planType=old_plan_type),
                    new_value=PlanChangedPayload(planType=new_plan_type, rescheduledSlots=len(open_slots)),
                    reason=reason,
                ),
            )

        logger.info(
            f"🔄 Subscription {subscription.id} plan changed {old_plan_type} → {new_plan_type.value} "
            f"({len(open_slots)} slots rescheduled)"
        )
        return self.get_subscription(subscription_id)

    def pause_subscription(self, subscription_id: int, reason: Optional[str] = None) -> Subscription:
        """Pause an active subscription, cancelling its future SCHEDULED slots"""
        subscription = self.get_subscription(subscription_id)
        target = next_status(subscription.status, SubscriptionOperation.PAUSE)
        reason = validate_reason(reason)
        now = self.clock()

        future_slots = [
            slot
            for slot in self.repo.get_subscription_appointments(
                self.db, subscription.id, [AppointmentStatus.SCHEDULED.value]
            )
            if slot.date > now
        ]

        with self.repo.transaction(self.db):
            self.repo.update_subscription(self.db, subscription, status=target.value, paused_at=now)
            for slot in future_slots:
                self.repo.update_appointment(self.db, slot, status=AppointmentStatus.CANCELLED.value)
            self.repo.add_change_log(
                self.db,
                build_change_log(
                    subscription.id,
                    ChangeType.PAUSED,
                    f"Subscription paused. {len(future_slots)} future appointments cancelled.",
                    old_value=StatusPayload(status=SubscriptionStatus.ACTIVE),
                    new_value=StatusPayload(status=target, affectedSlots=len(future_slots)),
                    reason=reason,
                ),
            )

        logger.info(f"⏸️ Subscription {subscription.id} paused ({len(future_slots)} slots cancelled)")
        self._emit(SUBSCRIPTION_PAUSED, subscription, reason)
        return self.get_subscription(subscription_id)

    def resume_subscription(
        self, subscription_id: int, new_start_date: datetime, reason: Optional[str] = None
    ) -> Subscription:
        """
        Reactivate a paused subscription with its remaining slots re-generated
        from `new_start_date` at the subscription's current interval.
        """
        subscription = self.get_subscription(subscription_id)
        target = next_status(subscription.status, SubscriptionOperation.RESUME)
        reason = validate_reason(reason)
        new_start_date = to_naive_utc(new_start_date)

        appointments = self.repo.get_subscription_appointments(self.db, subscription.id)
        completed_count = sum(1 for a in appointments if a.status == AppointmentStatus.COMPLETED.value)
        remaining_slots = subscription.total_slots - completed_count
        if remaining_slots <= 0:
            raise SlotsExhaustedError("There are no remaining slots to resume")

        # The client may have started another subscription while this one was paused
        self._ensure_no_active_subscription(subscription.client_id)

        new_dates = date_calculator.generate_slot_dates(
            new_start_date, remaining_slots, date_calculator.interval_days(subscription.plan_type)
        )
        results = self.conflict_detector.check_multiple_conflicts(
            subscription.barber_id, new_dates, self._service_duration(subscription.service)
        )
        self._raise_on_conflicts(results, "The new dates have conflicts. Please choose another start date.")

        cancelled = [a for a in appointments if a.status == AppointmentStatus.CANCELLED.value]
        retained_indexes = {
            a.subscription_slot_index for a in appointments if a.status != AppointmentStatus.CANCELLED.value
        }
        slot_indexes = self._free_slot_indexes(retained_indexes, remaining_slots)

        try:
            with self.repo.transaction(self.db):
                self.repo.delete_appointments(self.db, cancelled)
                for slot_index, date in zip(slot_indexes, new_dates):
                    self.repo.create_appointment(
                        self.db,
                        client_id=subscription.client_id,
                        barber_id=subscription.barber_id,
                        service_id=subscription.service_id,
                        subscription_id=subscription.id,
                        is_subscription_based=True,
                        subscription_slot_index=slot_index,
                        date=date,
                        status=AppointmentStatus.SCHEDULED.value,
                    )
                self.repo.update_subscription(self.db, subscription, status=target.value, paused_at=None)
                self.repo.add_change_log(
                    self.db,
                    build_change_log(
                        subscription.id,
                        ChangeType.RESUMED,
                        f"Subscription resumed with {remaining_slots} remaining appointments",
                        old_value=StatusPayload(status=SubscriptionStatus.PAUSED),
                        new_value=ResumedPayload(newStartDate=new_start_date, remainingSlots=remaining_slots),
                        reason=reason,
                    ),
                )
        except IntegrityError as e:
            if _is_active_subscription_violation(e):
                raise ActiveSubscriptionExistsError(subscription.client_id) from e
            raise

        logger.info(f"▶️ Subscription {subscription.id} resumed with {remaining_slots} slots")
        self._emit(SUBSCRIPTION_RESUMED, subscription, reason)
        return self.get_subscription(subscription_id)

    def cancel_subscription(self, subscription_id: int, reason: str) -> Subscription:
        """Cancel an active or paused subscription and its open future slots"""
        subscription = self.get_subscription(subscription_id)
        try:
            reason = validate_reason(reason, required=True)
        except ValueError as e:
            raise SubscriptionError("A cancellation reason is required") from e

        target = next_status(subscription.status, SubscriptionOperation.CANCEL)
        previous_status = SubscriptionStatus(subscription.status)
        now = self.clock()

        future_slots = [
            slot
            for slot in self.repo.get_subscription_appointments(
                self.db, subscription.id, OPEN_APPOINTMENT_STATUSES
            )
            if slot.date > now
        ]

        with self.repo.transaction(self.db):
            self.repo.update_subscription(
                self.db,
                subscription,
                status=target.value,
                cancelled_at=now,
                cancellation_reason=reason,
            )
            for slot in future_slots:
                self.repo.update_appointment(self.db, slot, status=AppointmentStatus.CANCELLED.value)
            self.repo.add_change_log(
                self.db,
                build_change_log(
                    subscription.id,
                    ChangeType.CANCELLED,
                    f"Subscription cancelled. {len(future_slots)} future appointments cancelled.",
                    old_value=StatusPayload(status=previous_status),
                    new_value=StatusPayload(status=target, affectedSlots=len(future_slots)),
                    reason=reason,
                ),
            )

        logger.info(f"🛑 Subscription {subscription.id} cancelled ({len(future_slots)} slots cancelled)")
        self._emit(SUBSCRIPTION_CANCELLED, subscription, reason)
        return self.get_subscription(subscription_id)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _ensure_no_active_subscription(self, client_id: int) -> None:
        if self.conflict_detector.has_active_subscription(client_id):
            raise ActiveSubscriptionExistsError(client_id)

    def _load_entities(self, request: PreviewSubscriptionRequest) -> tuple[Client, Barber, Service]:
        client = self.repo.get_client(self.db, request.clientId)
        if not client:
            raise NotFoundError("Client not found")

        barber = self.repo.get_barber(self.db, request.barberId)
        if not barber:
            raise NotFoundError("Barber not found")
        if not barber.is_active:
            raise UnavailableError("Barber not found or inactive")

        service = self.repo.get_service(self.db, request.serviceId)
        if not service:
            raise NotFoundError("Service not found")
        if not service.is_active:
            raise UnavailableError("Service not found or inactive")

        return client, barber, service

    def _build_preview(
        self, request: PreviewSubscriptionRequest, barber: Barber, service: Service
    ) -> SubscriptionPreviewResponse:
        duration = self._service_duration(service)
        start_date = request.startDate
        interval = date_calculator.interval_days(request.planType)
        end_date = date_calculator.calculate_end_date(start_date, request.durationMonths)
        total_slots = date_calculator.calculate_total_slots(start_date, end_date, interval)
        dates = date_calculator.generate_slot_dates(start_date, total_slots, interval)

        results = self.conflict_detector.check_multiple_conflicts(barber.id, dates, duration)

        appointments = [
            SlotPreview(
                slotIndex=result.slot_index,
                date=result.date,
                barberId=barber.id,
                barberName=barber.name,
                serviceId=service.id,
                serviceName=service.name,
                duration=duration,
                hasConflict=result.has_conflict,
                conflictDetails=self._conflict_details(result),
            )
            for result in results
        ]
        conflict_count = sum(1 for a in appointments if a.hasConflict)

        return SubscriptionPreviewResponse(
            subscription=SubscriptionSummary(
                planType=request.planType,
                startDate=start_date,
                endDate=end_date,
                durationMonths=request.durationMonths,
                totalSlots=total_slots,
                intervalDays=interval,
            ),
            appointments=appointments,
            hasAnyConflict=conflict_count > 0,
            conflictCount=conflict_count,
        )

    @staticmethod
    def _conflict_details(result: ConflictCheckResult) -> Optional[ConflictDetails]:
        if not result.has_conflict:
            return None
        return ConflictDetails(
            existingAppointmentId=result.existing_appointment_id,
            existingClientName=result.existing_client_name or "",
            existingStartTime=result.existing_start,
            existingEndTime=result.existing_end,
        )

    @staticmethod
    def _raise_on_conflicts(results: list[ConflictCheckResult], message: str) -> None:
        conflicts = [r for r in results if r.has_conflict]
        if conflicts:
            raise SchedulingConflictError(message, conflicts)

    @staticmethod
    def _service_duration(service: Optional[Service]) -> int:
        if service is not None and service.duration_minutes:
            return service.duration_minutes
        return DEFAULT_SERVICE_DURATION_MINUTES

    @staticmethod
    def _free_slot_indexes(taken: set, count: int) -> list[int]:
        """Lowest `count` slot indexes not held by a retained slot"""
        indexes = []
        candidate = 0
        while len(indexes) < count:
            if candidate not in taken:
                indexes.append(candidate)
            candidate += 1
        return indexes

    def _emit(self, event_name: str, subscription: Subscription, reason: Optional[str] = None) -> None:
        if self.dispatcher is None:
            return
        try:
            event = SubscriptionEvent.from_subscription(subscription, reason)
        except Exception as e:
            logger.error(f"❌ Could not build {event_name} event for subscription {subscription.id}: {e}")
            return
        self.dispatcher.emit(event_name, event)

    @staticmethod
    def _serialize_appointment(appointment) -> dict:
        return {
            "id": appointment.id,
            "slotIndex": appointment.subscription_slot_index,
            "date": appointment.date.isoformat() if appointment.date else None,
            "status": appointment.status,
        }

    @staticmethod
    def _serialize_subscription(subscription: Subscription, completed_slots: int) -> dict:
        return {
            "id": subscription.id,
            "clientId": subscription.client_id,
            "clientName": subscription.client.name if subscription.client else None,
            "barberId": subscription.barber_id,
            "barberName": subscription.barber.name if subscription.barber else None,
            "serviceId": subscription.service_id,
            "planType": subscription.plan_type,
            "status": subscription.status,
            "startDate": subscription.start_date.isoformat() if subscription.start_date else None,
            "endDate": subscription.end_date.isoformat() if subscription.end_date else None,
            "durationMonths": subscription.duration_months,
            "totalSlots": subscription.total_slots,
            "completedSlots": completed_slots,
            "pausedAt": subscription.paused_at.isoformat() if subscription.paused_at else None,
            "cancelledAt": subscription.cancelled_at.isoformat() if subscription.cancelled_at else None,
            "cancellationReason": subscription.cancellation_reason,
            "notes": subscription.notes,
            "createdAt": subscription.created_at.isoformat() if subscription.created_at else None,
        }
