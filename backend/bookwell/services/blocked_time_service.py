# Overview: Service-layer operations for staff blocked time.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import BlockedTime, Location, StaffMember
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_duration,
    validate_payload,
)
from .change_tracker import record_change
from .concurrency import critical_section, run_with_retry, staff_keys


ENTITY_BLOCKED_TIME = "BlockedTime"

BLOCKED_TIME_POLICY = ModelValidationPolicy(
    writable_fields={"staff_id", "location_id", "start_at", "duration_minutes", "reason"},
    required_on_create={"staff_id", "location_id", "start_at", "duration_minutes"},
)


def create_blocked_time(payload: dict, *, actor_id: str | None = None, actor_name: str | None = None) -> BlockedTime:
    """
    Reserve staff time with no client.

    Blocked time is not checked against existing bookings: it may be laid
    over them deliberately. From now on it blocks new bookings.
    """
    patch = validate_payload(model=BlockedTime, payload=payload, policy=BLOCKED_TIME_POLICY, partial=False)
    patch["duration_minutes"] = validate_duration(
        patch["duration_minutes"],
        max_minutes=current_app.config["MAX_BLOCKED_MINUTES"],
    )

    def _op():
        with critical_section(staff_keys([patch["staff_id"]])):
            if db.session.get(StaffMember, patch["staff_id"]) is None:
                raise NotFoundError(f"Staff member {patch['staff_id']} not found")
            if db.session.get(Location, patch["location_id"]) is None:
                raise NotFoundError(f"Location {patch['location_id']} not found")

            blocked = BlockedTime(created_by=actor_name or actor_id, **patch)
            db.session.add(blocked)
            db.session.commit()
            return blocked

    try:
        blocked = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    record_change(
        entity_type=ENTITY_BLOCKED_TIME,
        entity_id=blocked.id,
        change_type="CREATE",
        location_id=blocked.location_id,
        user_id=actor_id,
    )
    return blocked


def get_blocked_time(blocked_time_id: int) -> BlockedTime:
    blocked = db.session.get(BlockedTime, blocked_time_id)
    if blocked is None:
        raise NotFoundError(f"Blocked time {blocked_time_id} not found")
    return blocked


def list_blocked_times(
    *,
    staff_id: int | None = None,
    location_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[BlockedTime]:
    q = db.session.query(BlockedTime)
    if staff_id is not None:
        q = q.filter(BlockedTime.staff_id == staff_id)
    if location_id is not None:
        q = q.filter(BlockedTime.location_id == location_id)
    if start is not None and end is not None and end <= start:
        raise ValidationError("end must be after start")
    if end is not None:
        q = q.filter(BlockedTime.start_at < end)
    if start is not None:
        # Nothing starting earlier than the longest block can reach start
        lookback = current_app.config["MAX_BLOCKED_MINUTES"]
        q = q.filter(BlockedTime.start_at >= start - timedelta(minutes=lookback))
    rows = q.order_by(BlockedTime.start_at.asc(), BlockedTime.id.asc()).all()
    if start is not None:
        rows = [b for b in rows if b.end_at > start]
    return rows


def delete_blocked_time(blocked_time_id: int, *, actor_id: str | None = None) -> None:
    blocked = get_blocked_time(blocked_time_id)
    location_id = blocked.location_id
    db.session.delete(blocked)
    db.session.commit()

    record_change(
        entity_type=ENTITY_BLOCKED_TIME,
        entity_id=blocked_time_id,
        change_type="DELETE",
        location_id=location_id,
        user_id=actor_id,
    )
