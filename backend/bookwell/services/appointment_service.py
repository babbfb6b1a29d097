# Overview: Service-layer operations for appointments; booking, editing, status and staff changes.

"""
Bookwell Appointment Service

Orchestrates the booking engine for one appointment at a time:

    create / reschedule / reassign  -> availability_service (conflicts)
    status changes                  -> status_service (state machine)
    service/product line edits      -> reconcile_service (sparse merge)
    every committed mutation        -> change_tracker (best-effort log)

Every check-then-write runs as one unit inside run_with_retry, under an
in-process critical section keyed by the involved staff members and with
their StaffMember rows selected FOR UPDATE. A retry re-reads and re-checks
everything. Change records are written only after the domain commit.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Appointment, AppointmentService, Location, Service, StaffMember
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_appointment,
    validate_duration,
    validate_payload,
)
from .availability_service import ensure_available
from .change_tracker import record_change
from .concurrency import (
    RETRYABLE_ERRORS,
    appointment_key,
    critical_section,
    lock_for_update,
    run_with_retry,
    staff_keys,
)
from .reconcile_service import COLLECTIONS, apply_ops, initial_ops, reconcile
from .reference_service import next_booking_reference
from .status_service import (
    STATUS_PENDING,
    TERMINAL_STATUSES,
    apply_transition,
    normalize_status,
    set_line_completed,
    start_history,
)
from bookwell.time_utils import parse_iso_datetime


ENTITY_APPOINTMENT = "Appointment"

APPOINTMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "client_id",
        "staff_id",
        "location_id",
        "start_at",
        "duration_minutes",
        "notes",
        "total_price_cents",
        "discount_amount_cents",
        "original_amount_cents",
        "final_amount_cents",
    },
    required_on_create={"client_id", "staff_id", "location_id", "start_at"},
)

# Fields whose change moves the appointment on someone's calendar
TIMING_FIELDS = ("staff_id", "start_at", "duration_minutes")

DEFAULT_LIST_LIMIT = 200


def _actor_label(actor_id: str | None, actor_name: str | None) -> str | None:
    return actor_name or actor_id


def _execute(op, *, retry_on: tuple = RETRYABLE_ERRORS):
    """Run op with retry; any failure leaves the session rolled back."""
    try:
        return run_with_retry(op, retry_on=retry_on)
    except Exception:
        db.session.rollback()
        raise


def _lock_staff(staff_ids) -> dict[int, StaffMember]:
    ids = sorted(set(staff_ids))
    if not ids:
        return {}
    rows = lock_for_update(
        db.session.query(StaffMember).filter(StaffMember.id.in_(ids)).order_by(StaffMember.id)
    ).all()
    found = {s.id: s for s in rows}
    missing = [sid for sid in ids if sid not in found]
    if missing:
        raise NotFoundError(f"Staff member {missing[0]} not found")
    return found


def _load_for_update(appointment_id: int) -> Appointment:
    appt = db.session.get(
        Appointment,
        appointment_id,
        with_for_update=True,
        populate_existing=True,
    )
    if appt is None:
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return appt


def _require_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    if not location.is_active:
        raise ValidationError(f"Location {location_id} is not active")
    return location


def _require_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError(f"Service {service_id} not found")
    if not service.is_active:
        raise ValidationError(f"Service {service_id} is not active")
    return service


def _mentioned_staff(payload: dict) -> set[int]:
    """Staff ids named anywhere in a payload, for lock acquisition only."""
    ids = set()
    if payload.get("staff_id") not in (None, ""):
        ids.add(coerce_int(payload["staff_id"], "staff_id"))
    for raw in payload.get("additional_services") or []:
        if isinstance(raw, dict) and raw.get("staff_id") not in (None, ""):
            try:
                ids.add(coerce_int(raw["staff_id"], "staff_id"))
            except ValidationError:
                # The reconciler reports the bad item
                continue
    return ids


# =============================================================================
# Reads
# =============================================================================

def get_appointment(appointment_id: int) -> Appointment:
    appt = db.session.get(Appointment, appointment_id)
    if appt is None:
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return appt


def list_appointments(
    *,
    location_id: int | None = None,
    staff_id: int | None = None,
    client_id: str | None = None,
    status: str | None = None,
    date: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[Appointment]:
    """
    Appointments ordered by start time.

    staff_id matches primary staff and service-line sub-assignments.
    date (YYYY-MM-DD, UTC) is shorthand for a one-day start/end window.
    """
    q = db.session.query(Appointment)

    if location_id is not None:
        q = q.filter(Appointment.location_id == location_id)
    if staff_id is not None:
        sub_assigned = select(AppointmentService.appointment_id).where(AppointmentService.staff_id == staff_id)
        q = q.filter(or_(Appointment.staff_id == staff_id, Appointment.id.in_(sub_assigned)))
    if client_id is not None:
        q = q.filter(Appointment.client_id == str(client_id))
    if status:
        q = q.filter(Appointment.status == normalize_status(status))

    if date:
        try:
            day = datetime.strptime(date, "%Y-%m-%d")
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        start, end = day, day + timedelta(days=1)
    if start is not None:
        q = q.filter(Appointment.start_at >= start)
    if end is not None:
        q = q.filter(Appointment.start_at < end)

    if limit is None or limit <= 0:
        raise ValidationError("limit must be > 0")

    return q.order_by(Appointment.start_at.asc(), Appointment.id.asc()).limit(limit).all()


# =============================================================================
# Writes
# =============================================================================

def create_appointment(
    payload: dict,
    *,
    actor_id: str | None = None,
    actor_name: str | None = None,
) -> tuple[Appointment, list[str]]:
    """
    Book an appointment.

    Args:
        payload: client_id, staff_id, location_id, service_id, start_at are
            required; duration_minutes defaults to the main service's
            duration; additional_services / products are optional line lists
        actor_id: Who is booking (change log user)
        actor_name: Display name for the status history

    Returns:
        (appointment, warnings) where warnings lists dropped line items

    Raises:
        ValidationError: Malformed candidate (checked before any conflict work)
        NotFoundError: Unknown location, staff member or service
        ConflictError: An involved staff member is busy in the window
    """
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_POLICY, partial=False)
    max_minutes = current_app.config["MAX_APPOINTMENT_MINUTES"]
    enforce_rules_appointment(patch, max_minutes=max_minutes)

    if payload.get("service_id") in (None, ""):
        raise ValidationError("Missing required fields: service_id")
    service_id = coerce_int(payload["service_id"], "service_id")

    initial_status = normalize_status(payload.get("status") or STATUS_PENDING)
    if initial_status in TERMINAL_STATUSES:
        raise ValidationError(f"Cannot book an appointment as '{initial_status}'")

    lock_ids = _mentioned_staff(payload)
    actor = _actor_label(actor_id, actor_name)

    def _op():
        with critical_section(staff_keys(lock_ids)):
            _require_location(patch["location_id"])
            main_service = _require_service(service_id)

            duration = patch.get("duration_minutes")
            if duration is None:
                duration = validate_duration(main_service.duration_minutes, max_minutes=max_minutes)

            appt = Appointment(
                client_id=patch["client_id"],
                staff_id=patch["staff_id"],
                location_id=patch["location_id"],
                start_at=patch["start_at"],
                duration_minutes=duration,
                status=initial_status,
                notes=patch.get("notes"),
                total_price_cents=patch.get("total_price_cents") or 0,
                discount_amount_cents=patch.get("discount_amount_cents"),
                original_amount_cents=patch.get("original_amount_cents"),
                final_amount_cents=patch.get("final_amount_cents"),
            )
            appt.services.append(
                AppointmentService(
                    service_id=main_service.id,
                    position=0,
                    price_cents=main_service.price_cents,
                    duration_minutes=main_service.duration_minutes,
                )
            )

            ops = initial_ops(appt, payload)

            involved = {appt.staff_id}
            if ops.services is not None:
                involved.update(n.staff_id for n in ops.services.inserts if n.staff_id is not None)

            _lock_staff(involved)
            for sid in sorted(involved):
                ensure_available(sid, appt.start_at, appt.duration_minutes)

            appt.booking_reference = next_booking_reference(appt.location_id)
            db.session.add(appt)
            start_history(appt, actor)
            apply_ops(appt, ops)
            db.session.commit()
            return appt, ops.warnings

    # IntegrityError: concurrent first booking at a location raced on its sequence row
    appt, warnings = _execute(_op, retry_on=RETRYABLE_ERRORS + (IntegrityError,))

    current_app.logger.info("Booked appointment %s (%s)", appt.id, appt.booking_reference)
    for w in warnings:
        current_app.logger.warning("Appointment %s: %s", appt.id, w)

    record_change(
        entity_type=ENTITY_APPOINTMENT,
        entity_id=appt.id,
        change_type="CREATE",
        location_id=appt.location_id,
        user_id=actor_id,
    )
    return appt, warnings


def update_appointment_status(
    appointment_id: int,
    new_status: str,
    *,
    actor_id: str | None = None,
    actor_name: str | None = None,
) -> Appointment:
    """
    Move an appointment through the status lifecycle.

    Raises:
        NotFoundError: Unknown appointment
        ValidationError: Unknown status
        InvalidTransitionError: Appointment is completed, cancelled or no-show
    """
    target = normalize_status(new_status)
    actor = _actor_label(actor_id, actor_name)

    def _op():
        with critical_section([appointment_key(appointment_id)]):
            appt = _load_for_update(appointment_id)
            before = appt.status
            apply_transition(appt, target, actor)
            if appt.status == before:
                return appt, False
            db.session.commit()
            return appt, True

    appt, changed = _execute(_op)

    if changed:
        current_app.logger.info("Appointment %s status -> %s by %s", appt.id, appt.status, actor)
        record_change(
            entity_type=ENTITY_APPOINTMENT,
            entity_id=appt.id,
            change_type="UPDATE",
            location_id=appt.location_id,
            user_id=actor_id,
        )
    return appt


def update_appointment(
    appointment_id: int,
    payload: dict,
    *,
    actor_id: str | None = None,
    actor_name: str | None = None,
) -> tuple[Appointment, list[str]]:
    """
    Apply a sparse edit: scalar fields, service/product lines, status.

    Keys absent from payload are never touched. Line edits go through the
    reconciler; a status of completed cascades to every service line.
    Availability is re-checked for every involved staff member when staff,
    start time or duration change, and otherwise for staff newly
    sub-assigned by this edit.

    Returns:
        (appointment, warnings) where warnings lists dropped line items

    Raises:
        NotFoundError, ValidationError, ConflictError, InvalidTransitionError
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_POLICY, partial=True)
    enforce_rules_appointment(patch, max_minutes=current_app.config["MAX_APPOINTMENT_MINUTES"])

    target_status = normalize_status(payload["status"]) if payload.get("status") not in (None, "") else None
    touches_lines = any(key in payload for key in COLLECTIONS)
    actor = _actor_label(actor_id, actor_name)

    def _apply_update(appt: Appointment, previously_involved: set[int]):
        if "location_id" in patch:
            _require_location(patch["location_id"])
        if "staff_id" in patch:
            _lock_staff([patch["staff_id"]])

        timing_changed = False
        for key, value in patch.items():
            if getattr(appt, key) != value:
                if key in TIMING_FIELDS:
                    timing_changed = True
                setattr(appt, key, value)

        warnings: list[str] = []
        if touches_lines:
            ops = reconcile(appt, payload)
            warnings = ops.warnings
            apply_ops(appt, ops)

        # An echoed current status is not a transition, even on a terminal appointment
        if target_status is not None and target_status != appt.status:
            apply_transition(appt, target_status, actor)

        if appt.status not in TERMINAL_STATUSES:
            involved = appt.involved_staff_ids()
            to_check = involved if timing_changed else involved - previously_involved
            _lock_staff(to_check)
            for sid in sorted(to_check):
                ensure_available(sid, appt.start_at, appt.duration_minutes, exclude_appointment_id=appt.id)

        db.session.commit()
        return appt, warnings

    def _op():
        with critical_section([appointment_key(appointment_id)]):
            current = _load_for_update(appointment_id)
            lock_ids = current.involved_staff_ids() | _mentioned_staff(payload)

        while True:
            with critical_section([appointment_key(appointment_id)] + staff_keys(lock_ids)):
                appt = _load_for_update(appointment_id)
                previously_involved = appt.involved_staff_ids()
                if previously_involved <= lock_ids:
                    return _apply_update(appt, previously_involved)
            # Staff were sub-assigned between the two sections: lock them too
            lock_ids = lock_ids | previously_involved

    appt, warnings = _execute(_op)

    for w in warnings:
        current_app.logger.warning("Appointment %s: %s", appt.id, w)
    record_change(
        entity_type=ENTITY_APPOINTMENT,
        entity_id=appt.id,
        change_type="UPDATE",
        location_id=appt.location_id,
        user_id=actor_id,
    )
    return appt, warnings


def reassign_staff(
    appointment_id: int,
    new_staff_id: int,
    *,
    actor_id: str | None = None,
) -> Appointment:
    """
    Give an appointment to another primary staff member.

    The availability check ignores the appointment being reassigned, so a
    staff member can take over a slot that overlaps only itself.

    Raises:
        NotFoundError: Unknown appointment or staff member
        ConflictError: New staff member is busy in the window
    """
    new_staff_id = coerce_int(new_staff_id, "staff_id")

    def _op():
        with critical_section([appointment_key(appointment_id)] + staff_keys([new_staff_id])):
            appt = _load_for_update(appointment_id)
            _lock_staff([new_staff_id])
            if appt.staff_id == new_staff_id:
                return appt, False
            if appt.status not in TERMINAL_STATUSES:
                ensure_available(
                    new_staff_id,
                    appt.start_at,
                    appt.duration_minutes,
                    exclude_appointment_id=appt.id,
                )
            appt.staff_id = new_staff_id
            db.session.commit()
            return appt, True

    appt, changed = _execute(_op)

    if changed:
        current_app.logger.info("Appointment %s reassigned to staff %s", appt.id, new_staff_id)
        record_change(
            entity_type=ENTITY_APPOINTMENT,
            entity_id=appt.id,
            change_type="UPDATE",
            location_id=appt.location_id,
            user_id=actor_id,
        )
    return appt


def set_service_completed(
    appointment_id: int,
    line_id: int,
    *,
    completed: bool = True,
    actor_id: str | None = None,
) -> Appointment:
    """Flag a single service line; the appointment status does not move."""
    def _op():
        with critical_section([appointment_key(appointment_id)]):
            appt = _load_for_update(appointment_id)
            line = next((s for s in appt.services if s.id == line_id), None)
            if line is None:
                raise NotFoundError(f"Service line {line_id} not found on appointment {appointment_id}")
            set_line_completed(line, completed)
            db.session.commit()
            return appt

    appt = _execute(_op)
    record_change(
        entity_type=ENTITY_APPOINTMENT,
        entity_id=appt.id,
        change_type="UPDATE",
        location_id=appt.location_id,
        user_id=actor_id,
    )
    return appt


def delete_appointment(appointment_id: int, *, actor_id: str | None = None) -> None:
    def _op():
        with critical_section([appointment_key(appointment_id)]):
            appt = _load_for_update(appointment_id)
            location_id = appt.location_id
            db.session.delete(appt)
            db.session.commit()
            return location_id

    location_id = _execute(_op)
    current_app.logger.info("Deleted appointment %s", appointment_id)
    record_change(
        entity_type=ENTITY_APPOINTMENT,
        entity_id=appointment_id,
        change_type="DELETE",
        location_id=location_id,
        user_id=actor_id,
    )


def parse_window(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """Parse optional ISO start/end query values."""
    try:
        return parse_iso_datetime(start), parse_iso_datetime(end)
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 datetimes")
