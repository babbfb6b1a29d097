# Overview: Service-layer operations for booking references; per-location atomic numbering.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import BookingSequence


class BookingReferenceError(Exception):
    """Raised when a booking reference cannot be allocated."""
    pass


def format_booking_reference(prefix: str, location_id: int, number: int, pad: int = 5) -> str:
    return f"{prefix}-{location_id:03d}-{number:0{pad}d}"


def next_booking_reference(location_id: int, *, prefix: str | None = None, pad: int = 5) -> str:
    """
    Allocate the next booking reference for a location, e.g. BK-001-00042.

    Runs inside the caller's transaction and only flushes: the number is
    consumed when the caller commits, and released if it rolls back.

    Concurrent first use of a location can collide on the sequence insert
    (IntegrityError); callers retry the whole booking, which then takes the
    update path.
    """
    if not location_id:
        raise BookingReferenceError("location_id is required")
    prefix = prefix or current_app.config["BOOKING_REFERENCE_PREFIX"]

    stmt = (
        update(BookingSequence)
        .where(BookingSequence.location_id == location_id)
        .values(next_number=BookingSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(BookingSequence.next_number)
            .filter_by(location_id=location_id)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(BookingSequence(location_id=location_id, next_number=2))
        db.session.flush()
        number = 1

    return format_booking_reference(prefix, location_id, number, pad)
