# Overview: Service-layer helpers for the read-only catalog; demo seeding for local setups.

from __future__ import annotations

from ..extensions import db
from ..models import Location, Product, Service, StaffLocation, StaffMember


DEMO_LOCATIONS = [
    ("Downtown", "DT"),
    ("Uptown", "UP"),
]

# (name, email, color, location codes)
DEMO_STAFF = [
    ("Alex Rivera", "alex@bookwell.local", "#4f46e5", ("DT", "UP")),
    ("Sam Chen", "sam@bookwell.local", "#059669", ("DT",)),
    ("Jordan Lee", "jordan@bookwell.local", "#d97706", ("UP",)),
]

# (name, duration_minutes, price_cents)
DEMO_SERVICES = [
    ("Haircut", 45, 4500),
    ("Color", 90, 12000),
    ("Blow Dry", 30, 3000),
]

# (name, price_cents)
DEMO_PRODUCTS = [
    ("Shampoo", 1800),
    ("Styling Cream", 2200),
]


def seed_demo_catalog() -> dict:
    """
    Create the demo catalog if missing. Idempotent: rows are matched by
    name (email for staff) and never duplicated.

    Returns:
        Counts of rows created per kind
    """
    created = {"locations": 0, "staff_members": 0, "staff_locations": 0, "services": 0, "products": 0}

    locations = {}
    for name, code in DEMO_LOCATIONS:
        loc = db.session.query(Location).filter_by(name=name).first()
        if loc is None:
            loc = Location(name=name, code=code, is_active=True)
            db.session.add(loc)
            created["locations"] += 1
        locations[code] = loc
    db.session.flush()

    for name, email, color, codes in DEMO_STAFF:
        staff = db.session.query(StaffMember).filter_by(email=email).first()
        if staff is None:
            staff = StaffMember(name=name, email=email, color=color, is_active=True)
            db.session.add(staff)
            db.session.flush()
            created["staff_members"] += 1
        for code in codes:
            location_id = locations[code].id
            link = db.session.query(StaffLocation).filter_by(staff_id=staff.id, location_id=location_id).first()
            if link is None:
                db.session.add(StaffLocation(staff_id=staff.id, location_id=location_id, is_active=True))
                created["staff_locations"] += 1

    for name, duration, price in DEMO_SERVICES:
        if db.session.query(Service).filter_by(name=name).first() is None:
            db.session.add(Service(name=name, duration_minutes=duration, price_cents=price, is_active=True))
            created["services"] += 1

    for name, price in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(name=name).first() is None:
            db.session.add(Product(name=name, price_cents=price, is_active=True))
            created["products"] += 1

    db.session.commit()
    return created
