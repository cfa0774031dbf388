"""
Shared fixtures for subscription tests

Every test gets a fresh in-memory SQLite database with the full schema,
including the partial unique index on ACTIVE subscriptions.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from barbershop import models  # noqa: F401 - register collaborator tables
from barbershop import models_subscription  # noqa: F401 - register subscription tables
from barbershop.database import Base
from barbershop.domain.subscriptions import SubscriptionEventDispatcher, SubscriptionService
from barbershop.domain.subscriptions.events import SUBSCRIPTION_EVENTS
from barbershop.domain.subscriptions.schemas import CreateSubscriptionRequest
from barbershop.models import Barber, Client, Service
from barbershop.models_subscription import Appointment

# Day before the first slot of the reference schedule
NOW = datetime(2024, 12, 1, 12, 0)
REFERENCE_START = datetime(2024, 12, 2, 9, 0)


class FrozenClock:
    """Callable clock whose time tests can move"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ====================
# Database
# ====================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


# ====================
# Factories
# ====================


@pytest.fixture
def make_client(db):
    def _make(name="João Silva", phone="(34) 99876-5432"):
        client = Client(name=name, phone=phone)
        db.add(client)
        db.commit()
        return client

    return _make


@pytest.fixture
def make_barber(db):
    def _make(name="Carlos", is_active=True):
        barber = Barber(name=name, is_active=is_active)
        db.add(barber)
        db.commit()
        return barber

    return _make


@pytest.fixture
def make_service(db):
    def _make(name="Haircut", duration_minutes=30, is_active=True):
        service = Service(name=name, duration_minutes=duration_minutes, is_active=is_active)
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture
def make_booking(db):
    """Standalone appointment already on a barber's calendar"""

    def _make(barber, client, date, service=None, status="SCHEDULED"):
        booking = Appointment(
            client_id=client.id,
            barber_id=barber.id,
            service_id=service.id if service else None,
            date=date,
            status=status,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def other_client(make_client):
    return make_client(name="Maria Souza", phone="(11) 91234-5678")


@pytest.fixture
def barber(make_barber):
    return make_barber()


@pytest.fixture
def service(make_service):
    return make_service()


# ====================
# Service under test
# ====================


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def events():
    """(event name, event) pairs in emission order"""
    return []


@pytest.fixture
def dispatcher(events):
    dispatcher = SubscriptionEventDispatcher()
    for name in SUBSCRIPTION_EVENTS:
        dispatcher.register(name, lambda event, name=name: events.append((name, event)))
    return dispatcher


@pytest.fixture
def subscription_service(db, dispatcher, clock):
    return SubscriptionService(db, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def make_request():
    def _make(client, barber, service, start=REFERENCE_START, plan_type="WEEKLY", months=1, notes=None):
        return CreateSubscriptionRequest(
            clientId=client.id,
            barberId=barber.id,
            serviceId=service.id,
            planType=plan_type,
            startDate=start,
            durationMonths=months,
            notes=notes,
        )

    return _make


@pytest.fixture
def subscription(subscription_service, make_request, client, barber, service):
    """Weekly, one month from 2024-12-02 09:00: five slots, Dec 2 to Dec 30"""
    return subscription_service.create_subscription(make_request(client, barber, service))
