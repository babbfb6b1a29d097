# backend/bookwell/routes/blocked_times.py
"""
Staff blocked time (breaks, training, time off).

- GET    /api/blocked-times/       - List (staff_id, location_id, start, end filters)
- POST   /api/blocked-times/       - Create
- DELETE /api/blocked-times/:id    - Delete
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import blocked_time_service
from ..services.appointment_service import parse_window
from ..validation import NotFoundError, ValidationError
from ..decorators import require_actor


blocked_times_bp = Blueprint("blocked_times", __name__, url_prefix="/api/blocked-times")


@blocked_times_bp.get("/")
def list_blocked_times_route():
    try:
        start, end = parse_window(request.args.get("start"), request.args.get("end"))
        rows = blocked_time_service.list_blocked_times(
            staff_id=request.args.get("staff_id", type=int),
            location_id=request.args.get("location_id", type=int),
            start=start,
            end=end,
        )
        return jsonify({"blocked_times": [b.to_dict() for b in rows]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list blocked times")
        return jsonify({"error": "Internal server error"}), 500


@blocked_times_bp.post("/")
@require_actor
def create_blocked_time_route():
    """
    Request body:
        {"staff_id": 1, "location_id": 1, "start_at": "...", "duration_minutes": 30, "reason": "Lunch"}

    Response (201):
        {"blocked_time": {...}}
    """
    try:
        blocked = blocked_time_service.create_blocked_time(
            request.get_json(silent=True),
            actor_id=g.actor_id,
            actor_name=g.actor,
        )
        return jsonify({"blocked_time": blocked.to_dict()}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create blocked time")
        return jsonify({"error": "Internal server error"}), 500


@blocked_times_bp.delete("/<int:blocked_time_id>")
@require_actor
def delete_blocked_time_route(blocked_time_id: int):
    try:
        blocked_time_service.delete_blocked_time(blocked_time_id, actor_id=g.actor_id)
        return jsonify({"message": f"Blocked time {blocked_time_id} deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete blocked time")
        return jsonify({"error": "Internal server error"}), 500
