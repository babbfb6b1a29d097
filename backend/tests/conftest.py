"""
Pytest fixtures for Bookwell backend tests.

Provides test database setup, a small catalog (two locations, three staff
members, services and a product), appointment factories and test client.
"""

import itertools
from datetime import datetime, timedelta

import pytest
from bookwell import create_app
from bookwell.extensions import db
from bookwell.models import (
    Appointment, AppointmentService, Location, Product, Service, StaffLocation, StaffMember,
)


# All scenarios run on one fixed UTC day
DAY = datetime(2026, 3, 2)

ACTOR_HEADERS = {"X-User-Id": "user-1", "X-User-Name": "Front Desk"}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def actor_headers():
    return dict(ACTOR_HEADERS)


@pytest.fixture
def at():
    """at(14) -> 14:00 on the test day; at(14, 30) -> 14:30."""
    def _at(hour: int, minute: int = 0) -> datetime:
        return DAY + timedelta(hours=hour, minutes=minute)
    return _at


# =============================================================================
# Catalog
# =============================================================================

@pytest.fixture(scope='function')
def downtown(db_session):
    loc = Location(name="Downtown", code="DT", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def uptown(db_session):
    loc = Location(name="Uptown", code="UP", is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


def _staff(db_session, name, email, *locations):
    staff = StaffMember(name=name, email=email, is_active=True)
    db_session.add(staff)
    db_session.flush()
    for loc in locations:
        db_session.add(StaffLocation(staff_id=staff.id, location_id=loc.id, is_active=True))
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def alex(db_session, downtown, uptown):
    """Works at both locations."""
    return _staff(db_session, "Alex", "alex@example.com", downtown, uptown)


@pytest.fixture(scope='function')
def sam(db_session, downtown):
    return _staff(db_session, "Sam", "sam@example.com", downtown)


@pytest.fixture(scope='function')
def jordan(db_session, uptown):
    return _staff(db_session, "Jordan", "jordan@example.com", uptown)


@pytest.fixture(scope='function')
def haircut(db_session):
    service = Service(name="Haircut", duration_minutes=60, price_cents=4500, is_active=True)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def color(db_session):
    service = Service(name="Color", duration_minutes=90, price_cents=12000, is_active=True)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def blow_dry(db_session):
    service = Service(name="Blow Dry", duration_minutes=30, price_cents=3000, is_active=True)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def shampoo(db_session):
    product = Product(name="Shampoo", price_cents=1800, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


# =============================================================================
# Appointments
# =============================================================================

@pytest.fixture(scope='function')
def make_appointment(db_session, downtown, haircut):
    """
    Insert an appointment row directly, bypassing the booking checks.

    extra: iterable of (service, sub_staff_or_None) additional lines.
    """
    counter = itertools.count(1)

    def _make(staff, start_at, duration=60, *, status="confirmed", location=None, extra=(), client_id=None):
        n = next(counter)
        loc = location or downtown
        appt = Appointment(
            booking_reference=f"TEST-{n:05d}",
            client_id=client_id or f"client-{n}",
            staff_id=staff.id,
            location_id=loc.id,
            start_at=start_at,
            duration_minutes=duration,
            status=status,
        )
        appt.services.append(
            AppointmentService(
                service_id=haircut.id,
                position=0,
                price_cents=haircut.price_cents,
                duration_minutes=haircut.duration_minutes,
            )
        )
        for position, (service, sub_staff) in enumerate(extra, start=1):
            appt.services.append(
                AppointmentService(
                    service_id=service.id,
                    staff_id=sub_staff.id if sub_staff is not None else None,
                    position=position,
                    price_cents=service.price_cents,
                    duration_minutes=service.duration_minutes,
                )
            )
        db_session.add(appt)
        db_session.commit()
        return appt

    return _make


@pytest.fixture(scope='function')
def booking_payload(downtown, alex, haircut, at):
    """Valid create payload builder; keyword overrides win."""
    def _payload(**overrides):
        payload = {
            "client_id": "client-1",
            "staff_id": alex.id,
            "location_id": downtown.id,
            "service_id": haircut.id,
            "start_at": at(14).isoformat() + "Z",
            "duration_minutes": 60,
        }
        payload.update(overrides)
        return payload
    return _payload
