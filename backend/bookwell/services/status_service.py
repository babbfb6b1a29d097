# Overview: Service-layer rules for the appointment status lifecycle.

"""
Bookwell Appointment Status Lifecycle

================================================================================
PURPOSE: Enforce the appointment status state machine and its history
================================================================================

STATE MACHINE:
    pending -> confirmed -> checked-in -> completed
       |           |             |
       +-----------+-------------+--> cancelled | no-show

    pending, confirmed, checked-in: open, may move to any valid status
    completed, cancelled, no-show:  ABSORBING, no further transition

RULES (NON-NEGOTIABLE):
1. Once absorbing, an appointment never changes status again
2. Every successful transition appends exactly one history row
3. History rows are never edited or removed
4. Entering completed marks every service line completed
5. Completing a single service line never moves the parent status

This module holds the rules and mutates in-memory rows only. Locking,
commit and change-log recording are the caller's job (appointment_service).
================================================================================
"""

from __future__ import annotations
from datetime import datetime
from typing import Literal

from ..models import Appointment, AppointmentService, AppointmentStatusHistory
from ..validation import ValidationError
from bookwell.time_utils import utcnow


STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CHECKED_IN = "checked-in"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no-show"

# Linear progression first, then side exits
VALID_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_CHECKED_IN,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_NO_SHOW,
)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW})

AppointmentStatus = Literal["pending", "confirmed", "checked-in", "completed", "cancelled", "no-show"]

SYSTEM_ACTOR = "System"


class InvalidTransitionError(ValueError):
    """
    Raised when a status change hits the absorbing-state rule.

    This is a user-visible rejection, not a transient fault: callers report
    it and never retry.
    """
    pass


def normalize_status(value) -> str:
    """
    Canonical status spelling.

    Accepts any case, and '_' or ' ' in place of '-' ("CHECKED_IN" -> "checked-in").

    Raises:
        ValidationError: If the value is not one of VALID_STATUSES
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("status is required")
    status = value.strip().lower().replace("_", "-").replace(" ", "-")
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{value}'. Must be one of: {', '.join(VALID_STATUSES)}"
        )
    return status


def is_terminal(status: str) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def can_transition(current_status: str) -> bool:
    """
    Whether an appointment in current_status may change status at all.

    False for completed, cancelled and no-show regardless of the target.
    """
    return not is_terminal(current_status)


def apply_transition(
    appointment: Appointment,
    new_status: str,
    actor: str | None,
    *,
    occurred_at: datetime | None = None,
) -> Appointment:
    """
    Move an appointment to new_status and append the history row.

    Args:
        appointment: Appointment row (already loaded/locked by the caller)
        new_status: Target status, any accepted spelling
        actor: Display name or id of who made the change
        occurred_at: Override for the history timestamp (defaults to now)

    Returns:
        The same appointment, mutated in place (not committed)

    Raises:
        ValidationError: Unknown target status
        InvalidTransitionError: Appointment is already in an absorbing status

    Same-status requests on an open appointment are no-ops: nothing is
    appended.
    """
    target = normalize_status(new_status)
    current = normalize_status(appointment.status)

    if not can_transition(current):
        raise InvalidTransitionError(
            f"Cannot change status of appointment {appointment.id}: "
            f"it is already '{current}' and no further changes are allowed"
        )

    if target == current:
        return appointment

    ensure_history(appointment)

    appointment.status = target
    appointment.status_history.append(
        AppointmentStatusHistory(
            status=target,
            occurred_at=occurred_at or utcnow(),
            updated_by=actor or SYSTEM_ACTOR,
        )
    )

    if target == STATUS_COMPLETED:
        for line in appointment.services:
            line.completed = True

    return appointment


def ensure_history(appointment: Appointment) -> None:
    """
    Materialize the synthesized initial entry for rows that predate history.

    Legacy rows get their implicit pending entry written out before the
    first real transition is appended.
    """
    if appointment.status_history:
        return
    appointment.status_history.append(
        AppointmentStatusHistory(
            status=STATUS_PENDING,
            occurred_at=appointment.created_at or utcnow(),
            updated_by=SYSTEM_ACTOR,
        )
    )


def start_history(appointment: Appointment, actor: str | None, *, occurred_at: datetime | None = None) -> None:
    """First history row, written when the appointment is booked."""
    appointment.status_history.append(
        AppointmentStatusHistory(
            status=normalize_status(appointment.status),
            occurred_at=occurred_at or utcnow(),
            updated_by=actor or SYSTEM_ACTOR,
        )
    )


def effective_history(appointment: Appointment) -> list[dict]:
    """Serialized history; never empty."""
    return appointment.history_entries()


def set_line_completed(line: AppointmentService, completed: bool = True) -> AppointmentService:
    """
    Flag one service line. The parent status is left as is.
    """
    line.completed = bool(completed)
    return line
