# Overview: Service-layer operations for staff availability; the single authority on double-booking.

"""
Bookwell Availability Resolver

================================================================================
PURPOSE: Decide whether a staff member can take a candidate time window
================================================================================

Every booking, reschedule and reassignment path goes through this module.
There is no other conflict rule anywhere in the codebase.

RULES:
1. A staff member's calendar is location-independent: appointments and
   blocked time at ANY location are considered.
2. An appointment involves a staff member if they are its primary staff OR
   are sub-assigned to any of its service lines. Each appointment is
   evaluated once as a whole, not once per role.
3. completed / cancelled / no-show appointments never block.
4. Blocked time always blocks.
5. Intervals are half-open [start, end): back-to-back bookings do not
   conflict.
6. Existing appointments may carry turnover buffers
   (APPOINTMENT_BUFFER_BEFORE_MINUTES / _AFTER_MINUTES, both 0 by default):
   they occupy [start - before, end + after). Blocked time never does.

Queries are bounded to the staff member and to rows starting within
MAX_APPOINTMENT_MINUTES (or MAX_BLOCKED_MINUTES) before the candidate end,
so the check never scans the whole table.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from flask import current_app
from sqlalchemy import or_, select

from ..extensions import db
from ..models import Appointment, AppointmentService, BlockedTime, Location, StaffLocation, StaffMember
from ..validation import ConflictError, ValidationError, validate_duration
from bookwell.time_utils import add_minutes, to_utc_z


# Statuses that never occupy staff capacity (must match status_service)
NON_BLOCKING_STATUSES = frozenset({"completed", "cancelled", "no-show"})

SOURCE_APPOINTMENT = "appointment"
SOURCE_BLOCKED = "blocked"


@dataclass(frozen=True)
class BusyInterval:
    """One interval during which a staff member is occupied."""
    source: str
    source_id: int
    location_id: int
    start_at: datetime
    end_at: datetime

    def overlaps(self, start_at: datetime, end_at: datetime) -> bool:
        return intervals_overlap(self.start_at, self.end_at, start_at, end_at)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "source_id": self.source_id,
            "location_id": self.location_id,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
        }


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def appointment_buffers() -> tuple[int, int]:
    """(before, after) turnover minutes around every blocking appointment."""
    before = int(current_app.config.get("APPOINTMENT_BUFFER_BEFORE_MINUTES", 0))
    after = int(current_app.config.get("APPOINTMENT_BUFFER_AFTER_MINUTES", 0))
    if before < 0 or after < 0:
        raise ValidationError("Appointment buffer minutes must be >= 0")
    return before, after


def _candidate_window(start_at: datetime, duration_minutes: int) -> tuple[datetime, datetime]:
    if not isinstance(start_at, datetime):
        raise ValidationError("start_at must be a datetime")
    duration = validate_duration(
        duration_minutes,
        max_minutes=current_app.config["MAX_APPOINTMENT_MINUTES"],
    )
    return start_at, add_minutes(start_at, duration)


def busy_intervals(
    staff_id: int,
    window_start: datetime,
    window_end: datetime,
    *,
    exclude_appointment_id: int | None = None,
) -> list[BusyInterval]:
    """
    All intervals that may occupy staff_id around [window_start, window_end).

    Returned intervals are candidates only; callers apply the overlap test.
    """
    before, after = appointment_buffers()
    appt_lookback = window_start - timedelta(minutes=current_app.config["MAX_APPOINTMENT_MINUTES"] + after)
    blocked_lookback = window_start - timedelta(minutes=current_app.config["MAX_BLOCKED_MINUTES"])

    sub_assigned = select(AppointmentService.appointment_id).where(
        AppointmentService.staff_id == staff_id
    )

    q = db.session.query(Appointment).filter(
        or_(
            Appointment.staff_id == staff_id,
            Appointment.id.in_(sub_assigned),
        ),
        Appointment.status.notin_(NON_BLOCKING_STATUSES),
        Appointment.start_at < window_end + timedelta(minutes=before),
        Appointment.start_at >= appt_lookback,
    )
    if exclude_appointment_id is not None:
        q = q.filter(Appointment.id != exclude_appointment_id)

    intervals = [
        BusyInterval(
            source=SOURCE_APPOINTMENT,
            source_id=appt.id,
            location_id=appt.location_id,
            start_at=appt.start_at - timedelta(minutes=before),
            end_at=appt.end_at + timedelta(minutes=after),
        )
        for appt in q.order_by(Appointment.start_at, Appointment.id).all()
    ]

    blocked = (
        db.session.query(BlockedTime)
        .filter(
            BlockedTime.staff_id == staff_id,
            BlockedTime.start_at < window_end,
            BlockedTime.start_at >= blocked_lookback,
        )
        .order_by(BlockedTime.start_at, BlockedTime.id)
        .all()
    )
    intervals.extend(
        BusyInterval(
            source=SOURCE_BLOCKED,
            source_id=b.id,
            location_id=b.location_id,
            start_at=b.start_at,
            end_at=b.end_at,
        )
        for b in blocked
    )
    return intervals


def find_conflicts(
    staff_id: int,
    start_at: datetime,
    duration_minutes: int,
    *,
    exclude_appointment_id: int | None = None,
) -> list[BusyInterval]:
    """Every busy interval of staff_id overlapping the candidate window."""
    start, end = _candidate_window(start_at, duration_minutes)
    return [
        interval
        for interval in busy_intervals(staff_id, start, end, exclude_appointment_id=exclude_appointment_id)
        if interval.overlaps(start, end)
    ]


def has_conflict(
    staff_id: int,
    start_at: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> bool:
    """
    True if staff_id cannot take [start_at, start_at + duration_minutes).

    Args:
        staff_id: Staff member to check
        start_at: Candidate start (UTC-naive)
        duration_minutes: Candidate duration, must be > 0
        exclude_appointment_id: Appointment to ignore, used when re-checking
            an existing appointment (reassignment, reschedule)

    Raises:
        ValidationError: If the duration is not positive
    """
    start, end = _candidate_window(start_at, duration_minutes)
    return any(
        interval.overlaps(start, end)
        for interval in busy_intervals(staff_id, start, end, exclude_appointment_id=exclude_appointment_id)
    )


def describe_conflicts(staff_id: int, conflicts: list[BusyInterval]) -> str:
    """Human-readable reason, e.g. 'Staff member 3 has an appointment at Downtown and has blocked time'."""
    reasons = []

    appointment_locations = sorted({c.location_id for c in conflicts if c.source == SOURCE_APPOINTMENT})
    if appointment_locations:
        names = {
            loc.id: loc.name
            for loc in db.session.query(Location).filter(Location.id.in_(appointment_locations)).all()
        }
        if len(appointment_locations) == 1:
            reasons.append(f"has an appointment at {names.get(appointment_locations[0], appointment_locations[0])}")
        else:
            reasons.append("has appointments at multiple locations")

    if any(c.source == SOURCE_BLOCKED for c in conflicts):
        reasons.append("has blocked time")

    return f"Staff member {staff_id} {' and '.join(reasons)}"


def ensure_available(
    staff_id: int,
    start_at: datetime,
    duration_minutes: int,
    *,
    exclude_appointment_id: int | None = None,
) -> None:
    """
    Raise ConflictError if staff_id is busy during the candidate window.

    Must be called inside the same critical section and transaction as the
    write it guards (see appointment_service).
    """
    conflicts = find_conflicts(
        staff_id,
        start_at,
        duration_minutes,
        exclude_appointment_id=exclude_appointment_id,
    )
    if conflicts:
        raise ConflictError(describe_conflicts(staff_id, conflicts))


def unavailable_staff(
    staff_ids: Iterable[int],
    start_at: datetime,
    duration_minutes: int,
    *,
    exclude_appointment_id: int | None = None,
) -> set[int]:
    """
    Batch variant: the subset of staff_ids that cannot take the window.

    Applies the single-staff check to each id; results are identical to
    calling has_conflict per staff member.
    """
    return {
        staff_id
        for staff_id in dict.fromkeys(staff_ids)
        if has_conflict(staff_id, start_at, duration_minutes, exclude_appointment_id)
    }


def active_staff_for_location(location_id: int) -> list[StaffMember]:
    return (
        db.session.query(StaffMember)
        .join(StaffLocation, StaffLocation.staff_id == StaffMember.id)
        .filter(
            StaffLocation.location_id == location_id,
            StaffLocation.is_active.is_(True),
            StaffMember.is_active.is_(True),
        )
        .order_by(StaffMember.name, StaffMember.id)
        .all()
    )


def available_staff_at_location(
    location_id: int,
    start_at: datetime,
    duration_minutes: int,
    *,
    exclude_appointment_id: int | None = None,
) -> dict:
    """
    Split the active staff of a location into available / unavailable ids.

    Used to gray out choices before a booking is submitted. Conflicts are
    still checked across all locations.
    """
    staff = active_staff_for_location(location_id)
    busy = unavailable_staff(
        [s.id for s in staff],
        start_at,
        duration_minutes,
        exclude_appointment_id=exclude_appointment_id,
    )
    return {
        "available": [s.id for s in staff if s.id not in busy],
        "unavailable": [s.id for s in staff if s.id in busy],
    }
