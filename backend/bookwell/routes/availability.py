# backend/bookwell/routes/availability.py
"""
Availability lookups used before a booking is submitted.

- GET /api/availability/staff/:staff_id          - Can this staff member take the window?
- GET /api/availability/location/:location_id    - Which of a location's staff can?

Query params (both):
    start_at (ISO-8601, required), duration_minutes (required),
    exclude_appointment_id (optional, when re-checking an existing booking)

These are advisory; the booking routes re-check inside their transaction.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Location, StaffMember
from ..services import availability_service
from ..validation import NotFoundError, ValidationError, coerce_datetime


availability_bp = Blueprint("availability", __name__, url_prefix="/api/availability")


def _window_args() -> tuple:
    raw_start = request.args.get("start_at")
    if not raw_start:
        raise ValidationError("start_at is required")
    start_at = coerce_datetime(raw_start, "start_at")
    duration = request.args.get("duration_minutes")
    if duration in (None, ""):
        raise ValidationError("duration_minutes is required")
    exclude = request.args.get("exclude_appointment_id", type=int)
    return start_at, duration, exclude


@availability_bp.get("/staff/<int:staff_id>")
def staff_availability_route(staff_id: int):
    """
    Response:
        {
            "staff_id": 1,
            "available": false,
            "reason": "Staff member 1 has an appointment at Downtown",
            "conflicts": [{"source": "appointment", ...}]
        }
    """
    try:
        start_at, duration, exclude = _window_args()
        if db.session.get(StaffMember, staff_id) is None:
            raise NotFoundError(f"Staff member {staff_id} not found")

        conflicts = availability_service.find_conflicts(
            staff_id,
            start_at,
            duration,
            exclude_appointment_id=exclude,
        )
        return jsonify({
            "staff_id": staff_id,
            "available": not conflicts,
            "reason": availability_service.describe_conflicts(staff_id, conflicts) if conflicts else None,
            "conflicts": [c.to_dict() for c in conflicts],
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to check staff availability")
        return jsonify({"error": "Internal server error"}), 500


@availability_bp.get("/location/<int:location_id>")
def location_availability_route(location_id: int):
    """
    Response:
        {"location_id": 1, "available": [1, 4], "unavailable": [2]}
    """
    try:
        start_at, duration, exclude = _window_args()
        if db.session.get(Location, location_id) is None:
            raise NotFoundError(f"Location {location_id} not found")

        result = availability_service.available_staff_at_location(
            location_id,
            start_at,
            duration,
            exclude_appointment_id=exclude,
        )
        return jsonify({"location_id": location_id, **result}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to check location availability")
        return jsonify({"error": "Internal server error"}), 500
