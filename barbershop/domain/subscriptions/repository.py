"""Subscription repository - Database operations for subscriptions and their slots

Write methods only add/flush; callers group them inside `transaction()` so a
subscription, its slots and its change-log entries commit or roll back together.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import Barber, Client, Service
from ...models_subscription import (
    Appointment,
    AppointmentStatus,
    Subscription,
    SubscriptionChangeLog,
    SubscriptionStatus,
)


class SubscriptionRepository:
    """Repository for subscription database operations"""

    @staticmethod
    @contextmanager
    def transaction(db: Session):
        """Commit everything written inside the block, or roll all of it back"""
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    # Collaborator lookups
    @staticmethod
    def get_client(db: Session, client_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id).first()

    @staticmethod
    def get_barber(db: Session, barber_id: int) -> Optional[Barber]:
        return db.query(Barber).filter(Barber.id == barber_id).first()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    # Bookings
    @staticmethod
    def get_barber_bookings(
        db: Session,
        barber_id: int,
        statuses: Iterable[str],
        window_start: datetime,
        window_end: datetime,
        exclude_appointment_id: Optional[int] = None,
        exclude_subscription_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Barber bookings with a status in `statuses` and date in [window_start, window_end)"""
        query = (
            db.query(Appointment)
            .options(joinedload(Appointment.service), joinedload(Appointment.client))
            .filter(
                Appointment.barber_id == barber_id,
                Appointment.status.in_(list(statuses)),
                Appointment.date >= window_start,
                Appointment.date < window_end,
            )
        )

        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        if exclude_subscription_id is not None:
            query = query.filter(
                or_(
                    Appointment.subscription_id.is_(None),
                    Appointment.subscription_id != exclude_subscription_id,
                )
            )

        return query.order_by(Appointment.date.asc()).all()

    @staticmethod
    def get_subscription_appointments(
        db: Session, subscription_id: int, statuses: Optional[Iterable[str]] = None
    ) -> list[Appointment]:
        """Slots of a subscription ordered by slot index"""
        query = db.query(Appointment).filter(Appointment.subscription_id == subscription_id)
        if statuses is not None:
            query = query.filter(Appointment.status.in_(list(statuses)))
        return query.order_by(Appointment.subscription_slot_index.asc()).all()

    @staticmethod
    def create_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        return appointment

    @staticmethod
    def update_appointment(db: Session, appointment: Appointment, **updates) -> Appointment:
        for key, value in updates.items():
            setattr(appointment, key, value)
        return appointment

    @staticmethod
    def delete_appointments(db: Session, appointments: Iterable[Appointment]) -> int:
        """Delete slots and flush so their slot indexes are free for new rows"""
        deleted = 0
        for appointment in appointments:
            db.delete(appointment)
            deleted += 1
        db.flush()
        return deleted

    # Subscriptions
    @staticmethod
    def get_subscription(db: Session, subscription_id: int) -> Optional[Subscription]:
        return (
            db.query(Subscription)
            .options(
                joinedload(Subscription.client),
                joinedload(Subscription.barber),
                joinedload(Subscription.service),
            )
            .filter(Subscription.id == subscription_id)
            .first()
        )

    @staticmethod
    def get_active_subscription_for_client(db: Session, client_id: int) -> Optional[Subscription]:
        return (
            db.query(Subscription)
            .filter(
                Subscription.client_id == client_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .first()
        )

    @staticmethod
    def list_subscriptions(
        db: Session,
        skip: int = 0,
        take: int = 50,
        client_id: Optional[int] = None,
        barber_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> tuple[list[Subscription], int]:
        """Filtered page of subscriptions, newest first, with the unpaged total"""
        query = db.query(Subscription)

        if client_id is not None:
            query = query.filter(Subscription.client_id == client_id)
        if barber_id is not None:
            query = query.filter(Subscription.barber_id == barber_id)
        if status:
            query = query.filter(Subscription.status == status)

        total = query.count()
        subscriptions = (
            query.options(joinedload(Subscription.client), joinedload(Subscription.barber))
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .offset(skip)
            .limit(take)
            .all()
        )
        return subscriptions, total

    @staticmethod
    def count_completed_slots(db: Session, subscription_ids: list[int]) -> dict[int, int]:
        """Completed slot count per subscription id"""
        if not subscription_ids:
            return {}
        rows = (
            db.query(Appointment.subscription_id, func.count(Appointment.id))
            .filter(
                Appointment.subscription_id.in_(subscription_ids),
                Appointment.status == AppointmentStatus.COMPLETED.value,
            )
            .group_by(Appointment.subscription_id)
            .all()
        )
        return {subscription_id: count for subscription_id, count in rows}

    @staticmethod
    def create_subscription(db: Session, **subscription_data) -> Subscription:
        """Add a subscription and flush to obtain its id"""
        subscription = Subscription(**subscription_data)
        db.add(subscription)
        db.flush()
        return subscription

    @staticmethod
    def update_subscription(db: Session, subscription: Subscription, **updates) -> Subscription:
        for key, value in updates.items():
            if hasattr(subscription, key):
                setattr(subscription, key, value)
        db.flush()
        return subscription

    # Change log
    @staticmethod
    def add_change_log(db: Session, entry: SubscriptionChangeLog) -> SubscriptionChangeLog:
        db.add(entry)
        return entry

    @staticmethod
    def get_change_logs(db: Session, subscription_id: int, limit: Optional[int] = None) -> list[SubscriptionChangeLog]:
        query = (
            db.query(SubscriptionChangeLog)
            .filter(SubscriptionChangeLog.subscription_id == subscription_id)
            .order_by(SubscriptionChangeLog.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()
