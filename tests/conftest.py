"""
Test configuration and fixtures.
"""
import os
import tempfile
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Configure the app before importing it: throwaway SQLite file, no scheduler
_TEST_DIR = tempfile.mkdtemp(prefix="mesa-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/mesa_test.db"
os.environ["JWT_SECRET_KEY"] = "mesafeliz-test-signing-key-0123456789abcdef"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-payment-secret"
os.environ["REDIS_URL"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["DEBUG"] = "false"

from mesa.main import app
import mesa.models  # noqa: F401
from mesa.core.clock import get_business_date, local_now, service_window, slot_datetime
from mesa.core.deps import Actor, ActorRole
from mesa.core.locks import InMemoryLockManager
from mesa.core.security import create_access_token
from mesa.db.base import Base
from mesa.db.session import SessionLocal, engine, get_db
from mesa.models.policy import PeakWindow, ReservationPolicy
from mesa.models.reservation import Reservation, ReservationStatus
from mesa.models.restaurant import Restaurant
from mesa.models.table import DiningTable, TableStatus
from mesa.services.engine import AllocationEngine
from mesa.services.notifications import LoggingNotifier, get_notifier
from mesa.services.reservations import generate_confirmation_code


# A Friday well inside the default 30-day booking horizon of NOW
BOOKING_DATE = date(2026, 3, 6)
NOW = datetime(2026, 3, 1, 10, 0)


@pytest.fixture(autouse=True)
def schema() -> Generator[None, None, None]:
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a database session for the test."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory():
    """Sessions for worker threads (one per thread)."""
    return SessionLocal


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def locks() -> InMemoryLockManager:
    return InMemoryLockManager(default_timeout=5.0)


@pytest.fixture
def notifier() -> LoggingNotifier:
    """The process notifier, emptied; routers and engines built by tests share it."""
    get_notifier.cache_clear()
    instance = get_notifier()
    assert isinstance(instance, LoggingNotifier)
    return instance


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def allocation_engine(db: Session, locks, notifier, sleeps) -> AllocationEngine:
    """Engine on the test session; backoff sleeps are recorded, not slept."""
    return AllocationEngine(db, locks=locks, notifier=notifier, sleep=sleeps.append)


# ----------------------------------------------------------------------
# Restaurant data
# ----------------------------------------------------------------------

@pytest.fixture
def restaurant(db: Session) -> Restaurant:
    """Open 12:00-23:00 every day, UTC."""
    restaurant = Restaurant(
        name="Casa Feliz",
        timezone="UTC",
        open_time=time(12, 0),
        close_time=time(23, 0),
        is_active=True,
    )
    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db: Session) -> Restaurant:
    restaurant = Restaurant(
        name="La Otra Mesa",
        timezone="UTC",
        open_time=time(13, 0),
        close_time=time(22, 0),
    )
    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)
    return restaurant


@pytest.fixture
def make_table(db: Session, restaurant: Restaurant) -> Callable[..., DiningTable]:
    def _make(number: int, capacity: int, status: TableStatus = TableStatus.AVAILABLE, restaurant_id=None) -> DiningTable:
        table = DiningTable(
            restaurant_id=restaurant_id or restaurant.id,
            number=number,
            capacity=capacity,
            status=status,
        )
        db.add(table)
        db.commit()
        db.refresh(table)
        return table
    return _make


@pytest.fixture
def peak_window(db: Session, restaurant: Restaurant) -> PeakWindow:
    """19:00-21:00 every day, deposit 300."""
    window = PeakWindow(
        restaurant_id=restaurant.id,
        label="Dinner rush",
        start_time=time(19, 0),
        end_time=time(21, 0),
        deposit_amount=Decimal("300.00"),
    )
    db.add(window)
    db.commit()
    return window


@pytest.fixture
def manual_confirm(db: Session, restaurant: Restaurant) -> ReservationPolicy:
    """Policy row with auto-confirm switched off, other values at defaults."""
    policy = ReservationPolicy(
        restaurant_id=restaurant.id,
        slot_minutes=30,
        service_duration_minutes=120,
        max_party_size=12,
        auto_confirm=False,
        arrival_tolerance_minutes=15,
        checkin_grace_minutes=30,
        min_lead_minutes=0,
        max_advance_days=30,
        deposits_enabled=True,
        deposit_expiry_minutes=30,
    )
    db.add(policy)
    db.commit()
    return policy


@pytest.fixture
def make_reservation(db: Session, restaurant: Restaurant) -> Callable[..., Reservation]:
    """Insert a reservation row directly, bypassing booking rules."""
    def _make(
        table: Optional[DiningTable],
        business_date: date = BOOKING_DATE,
        slot: time = time(13, 0),
        status: ReservationStatus = ReservationStatus.CONFIRMED,
        party_size: int = 2,
        user_id: str = "diner-1",
        starts_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        deposit_amount: Optional[Decimal] = None,
    ) -> Reservation:
        if starts_at is None:
            starts_at = slot_datetime(business_date, slot)
        starts_at, ends_at = service_window(starts_at, 120)
        reservation = Reservation(
            restaurant_id=restaurant.id,
            table_id=table.id if table is not None else None,
            user_id=user_id,
            date=business_date,
            time=starts_at.time().replace(second=0, microsecond=0),
            starts_at=starts_at,
            ends_at=ends_at,
            party_size=party_size,
            status=status,
            deposit_required=deposit_amount is not None,
            deposit_amount=deposit_amount,
            confirmation_code=generate_confirmation_code(),
            created_at=created_at or NOW,
        )
        db.add(reservation)
        db.commit()
        db.refresh(reservation)
        return reservation
    return _make


@pytest.fixture
def future_date() -> date:
    """A business date one week after the current UTC business date."""
    return get_business_date(local_now("UTC")) + timedelta(days=7)


# ----------------------------------------------------------------------
# Callers
# ----------------------------------------------------------------------

@pytest.fixture
def customer() -> Actor:
    return Actor(user_id="diner-1", role=ActorRole.CUSTOMER)


@pytest.fixture
def other_customer() -> Actor:
    return Actor(user_id="diner-2", role=ActorRole.CUSTOMER)


@pytest.fixture
def staff(restaurant: Restaurant) -> Actor:
    return Actor(user_id="host-1", role=ActorRole.RESTAURANT_STAFF, restaurant_id=restaurant.id)


@pytest.fixture
def admin(restaurant: Restaurant) -> Actor:
    return Actor(user_id="manager-1", role=ActorRole.RESTAURANT_ADMIN, restaurant_id=restaurant.id)


def _headers(actor: Actor) -> dict:
    token = create_access_token(actor.user_id, actor.role.value, actor.restaurant_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers(customer: Actor) -> dict:
    return _headers(customer)


@pytest.fixture
def other_customer_headers(other_customer: Actor) -> dict:
    return _headers(other_customer)


@pytest.fixture
def staff_headers(staff: Actor) -> dict:
    return _headers(staff)


@pytest.fixture
def admin_headers(admin: Actor) -> dict:
    return _headers(admin)


@pytest.fixture
def other_staff_headers(other_restaurant: Restaurant) -> dict:
    return _headers(Actor(user_id="host-9", role=ActorRole.RESTAURANT_STAFF, restaurant_id=other_restaurant.id))
