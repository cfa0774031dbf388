"""
Subscription Models for Recurring Barber Appointments
"""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class PlanType(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class ChangeType(str, Enum):
    CREATED = "CREATED"
    PLAN_CHANGED = "PLAN_CHANGED"
    APPOINTMENT_ADJUSTED = "APPOINTMENT_ADJUSTED"
    PAUSED = "PAUSED"
    RESUMED = "RESUMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


# Slots that still occupy the barber's calendar
OPEN_APPOINTMENT_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.IN_PROGRESS.value)
# Slots whose date is frozen
TERMINAL_APPOINTMENT_STATUSES = (AppointmentStatus.COMPLETED.value, AppointmentStatus.NO_SHOW.value)


class Subscription(Base):
    """A recurring series of bookings between one client and one barber/service"""

    __tablename__ = "subscriptions"
    __table_args__ = (
        # At most one ACTIVE subscription per client, enforced by the database
        Index(
            "uq_subscriptions_client_active",
            "client_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    barber_id = Column(Integer, ForeignKey("barbers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)

    plan_type = Column(String(20), nullable=False)  # WEEKLY, BIWEEKLY
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    duration_months = Column(Integer, nullable=False)
    total_slots = Column(Integer, nullable=False)  # Fixed at creation

    # Status workflow: ACTIVE ⇄ PAUSED → CANCELLED, ACTIVE → COMPLETED (sweep)
    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True)
    paused_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="subscriptions")
    barber = relationship("Barber", back_populates="subscriptions")
    service = relationship("Service")
    appointments = relationship(
        "Appointment",
        back_populates="subscription",
        order_by="Appointment.subscription_slot_index",
    )
    change_logs = relationship(
        "SubscriptionChangeLog",
        back_populates="subscription",
        order_by="desc(SubscriptionChangeLog.id)",
    )


class Appointment(Base):
    """A booking on a barber's calendar; subscription slots carry their ordinal"""

    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint(
            "subscription_id", "subscription_slot_index", name="uq_appointments_subscription_slot"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    barber_id = Column(Integer, ForeignKey("barbers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=True, index=True)

    subscription_slot_index = Column(Integer, nullable=True)  # Zero-based, null for standalone
    is_subscription_based = Column(Boolean, default=False, nullable=False)

    date = Column(DateTime, nullable=False, index=True)
    # SCHEDULED → IN_PROGRESS → COMPLETED, or CANCELLED / NO_SHOW
    status = Column(String(20), default=AppointmentStatus.SCHEDULED.value, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="appointments")
    barber = relationship("Barber", back_populates="appointments")
    service = relationship("Service")
    subscription = relationship("Subscription", back_populates="appointments")


class SubscriptionChangeLog(Base):
    """Append-only audit trail of subscription state changes"""

    __tablename__ = "subscription_change_logs"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False, index=True)
    change_type = Column(String(30), nullable=False)
    description = Column(Text, nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    subscription = relationship("Subscription", back_populates="change_logs")
