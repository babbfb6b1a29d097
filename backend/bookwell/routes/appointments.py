# backend/bookwell/routes/appointments.py
"""
Bookwell Appointment API Routes

- GET    /api/appointments/                                   - List appointments
- POST   /api/appointments/                                   - Book an appointment
- GET    /api/appointments/:id                                - Get one appointment
- PATCH  /api/appointments/:id                                - Sparse update
- DELETE /api/appointments/:id                                - Delete
- POST   /api/appointments/:id/status                         - Status transition
- POST   /api/appointments/:id/reassign                       - Change primary staff
- POST   /api/appointments/:id/services/:line_id/complete     - Complete one service line

ERRORS:
- 400: ValidationError, InvalidTransitionError
- 404: NotFoundError
- 409: ConflictError (staff member already booked)

SECURITY:
- Mutating routes require the upstream identity (require_actor)
- The actor recorded in history and change records comes from the request
  headers via g, NOT from the request body
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import appointment_service
from ..services.status_service import InvalidTransitionError
from ..validation import ConflictError, NotFoundError, ValidationError
from ..decorators import require_actor


appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")


@appointments_bp.get("/")
def list_appointments_route():
    """
    List appointments.

    Query params:
        location_id, staff_id, client_id, status, date (YYYY-MM-DD),
        start / end (ISO-8601), limit (default 200)
    """
    try:
        start, end = appointment_service.parse_window(request.args.get("start"), request.args.get("end"))
        appointments = appointment_service.list_appointments(
            location_id=request.args.get("location_id", type=int),
            staff_id=request.args.get("staff_id", type=int),
            client_id=request.args.get("client_id"),
            status=request.args.get("status"),
            date=request.args.get("date"),
            start=start,
            end=end,
            limit=request.args.get("limit", default=appointment_service.DEFAULT_LIST_LIMIT, type=int),
        )
        return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list appointments")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.post("/")
@require_actor
def create_appointment_route():
    """
    Book an appointment.

    Request body:
        {
            "client_id": "c-1",
            "staff_id": 1,
            "location_id": 1,
            "service_id": 3,
            "start_at": "2026-03-02T14:00:00Z",
            "duration_minutes": 60,              // optional, defaults to service duration
            "status": "pending",                 // optional, pending or confirmed
            "additional_services": [{"service_id": 4, "staff_id": 2}],
            "products": [{"product_id": 7, "quantity": 1}]
        }

    Response (201):
        {"appointment": {...}, "warnings": [...]}
    """
    try:
        appt, warnings = appointment_service.create_appointment(
            request.get_json(silent=True),
            actor_id=g.actor_id,
            actor_name=g.actor,
        )
        return jsonify({"appointment": appt.to_dict(), "warnings": warnings}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create appointment")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.get("/<int:appointment_id>")
def get_appointment_route(appointment_id: int):
    try:
        appt = appointment_service.get_appointment(appointment_id)
        return jsonify({"appointment": appt.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get appointment")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.patch("/<int:appointment_id>")
@require_actor
def update_appointment_route(appointment_id: int):
    """
    Sparse update. Keys that are absent are left untouched.

    additional_services / products items:
    - {"id": 12}                                     keep persisted line 12
    - {"id": "temp-1", "service_id": 4, ...}         add a new line

    Response:
        {"appointment": {...}, "warnings": [...]}   // warnings list dropped items
    """
    try:
        appt, warnings = appointment_service.update_appointment(
            appointment_id,
            request.get_json(silent=True),
            actor_id=g.actor_id,
            actor_name=g.actor,
        )
        return jsonify({"appointment": appt.to_dict(), "warnings": warnings}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (InvalidTransitionError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update appointment")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.delete("/<int:appointment_id>")
@require_actor
def delete_appointment_route(appointment_id: int):
    try:
        appointment_service.delete_appointment(appointment_id, actor_id=g.actor_id)
        return jsonify({"message": f"Appointment {appointment_id} deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete appointment")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.post("/<int:appointment_id>/status")
@require_actor
def update_status_route(appointment_id: int):
    """
    Move an appointment to a new status.

    Request body:
        {"status": "confirmed"}

    Error responses:
        400: Unknown status, or appointment is completed / cancelled / no-show
        404: Appointment not found
    """
    try:
        data = request.get_json(silent=True) or {}
        appt = appointment_service.update_appointment_status(
            appointment_id,
            data.get("status"),
            actor_id=g.actor_id,
            actor_name=g.actor,
        )
        return jsonify({"appointment": appt.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (InvalidTransitionError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update appointment status")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.post("/<int:appointment_id>/reassign")
@require_actor
def reassign_route(appointment_id: int):
    """
    Request body:
        {"staff_id": 2}

    Error responses:
        409: New staff member is busy in the appointment's window
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("staff_id") in (None, ""):
            return jsonify({"error": "staff_id is required"}), 400
        appt = appointment_service.reassign_staff(
            appointment_id,
            data["staff_id"],
            actor_id=g.actor_id,
        )
        return jsonify({"appointment": appt.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reassign appointment")
        return jsonify({"error": "Internal server error"}), 500


@appointments_bp.post("/<int:appointment_id>/services/<int:line_id>/complete")
@require_actor
def complete_service_route(appointment_id: int, line_id: int):
    """
    Request body (optional):
        {"completed": true}
    """
    try:
        data = request.get_json(silent=True) or {}
        completed = data.get("completed", True)
        if not isinstance(completed, bool):
            return jsonify({"error": "completed must be a boolean"}), 400
        appt = appointment_service.set_service_completed(
            appointment_id,
            line_id,
            completed=completed,
            actor_id=g.actor_id,
        )
        return jsonify({"appointment": appt.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to complete service line")
        return jsonify({"error": "Internal server error"}), 500
