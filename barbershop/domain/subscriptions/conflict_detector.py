"""Double-booking detection against a barber's existing calendar"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import CONFLICT_LOOKBACK_MINUTES, DEFAULT_SERVICE_DURATION_MINUTES
from ...models_subscription import OPEN_APPOINTMENT_STATUSES, Appointment
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)


@dataclass
class ConflictCheckResult:
    slot_index: int
    date: datetime
    has_conflict: bool = False
    conflicting_appointment: Optional[Appointment] = None
    existing_client_name: Optional[str] = None
    existing_start: Optional[datetime] = None
    existing_end: Optional[datetime] = None

    @property
    def existing_appointment_id(self) -> Optional[int]:
        return self.conflicting_appointment.id if self.conflicting_appointment else None


def booking_duration_minutes(appointment: Appointment) -> int:
    """Length of an existing booking, from its service when known"""
    if appointment.service is not None and appointment.service.duration_minutes:
        return appointment.service.duration_minutes
    return DEFAULT_SERVICE_DURATION_MINUTES


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open intervals [start, end) overlap"""
    return start_a < end_b and end_a > start_b


class ConflictDetector:
    """
    Checks candidate slots against SCHEDULED/IN_PROGRESS bookings of a barber.

    The store is searched from `lookback_minutes` before the candidate start up to
    the candidate end, because an earlier booking's length is only known once it
    has been fetched. Candidates are never compared with each other.
    """

    def __init__(
        self,
        db: Session,
        repo: Optional[SubscriptionRepository] = None,
        lookback_minutes: int = CONFLICT_LOOKBACK_MINUTES,
    ):
        self.db = db
        self.repo = repo or SubscriptionRepository()
        self.lookback = timedelta(minutes=lookback_minutes)

    def check_single_conflict(
        self,
        barber_id: int,
        candidate_date: datetime,
        duration_minutes: int,
        exclude_slot_id: Optional[int] = None,
        exclude_subscription_id: Optional[int] = None,
        slot_index: int = 0,
    ) -> ConflictCheckResult:
        candidate_end = candidate_date + timedelta(minutes=duration_minutes)

        bookings = self.repo.get_barber_bookings(
            self.db,
            barber_id,
            OPEN_APPOINTMENT_STATUSES,
            candidate_date - self.lookback,
            candidate_end,
            exclude_appointment_id=exclude_slot_id,
            exclude_subscription_id=exclude_subscription_id,
        )

        for booking in bookings:
            existing_end = booking.date + timedelta(minutes=booking_duration_minutes(booking))
            if intervals_overlap(candidate_date, candidate_end, booking.date, existing_end):
                return ConflictCheckResult(
                    slot_index=slot_index,
                    date=candidate_date,
                    has_conflict=True,
                    conflicting_appointment=booking,
                    existing_client_name=booking.client.name if booking.client else "",
                    existing_start=booking.date,
                    existing_end=existing_end,
                )

        return ConflictCheckResult(slot_index=slot_index, date=candidate_date)

    def check_multiple_conflicts(
        self,
        barber_id: int,
        dates: list[datetime],
        duration_minutes: int,
        exclude_subscription_id: Optional[int] = None,
    ) -> list[ConflictCheckResult]:
        """One result per candidate, in input order (index = slot position)"""
        results = [
            self.check_single_conflict(
                barber_id,
                date,
                duration_minutes,
                exclude_subscription_id=exclude_subscription_id,
                slot_index=index,
            )
            for index, date in enumerate(dates)
        ]

        conflict_count = sum(1 for r in results if r.has_conflict)
        if conflict_count:
            logger.info(
                f"⚠️ {conflict_count}/{len(dates)} candidate slots conflict for barber {barber_id}"
            )
        return results

    def has_active_subscription(self, client_id: int) -> bool:
        return self.repo.get_active_subscription_for_client(self.db, client_id) is not None
