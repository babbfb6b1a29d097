# backend/bookwell/routes/changes.py
"""
Change-log polling for disconnected clients.

- GET  /api/changes/poll      - Changes after a cursor
- POST /api/changes/cleanup   - Retention cleanup

PROTOCOL:
1. Client calls /poll with no since -> gets a baseline timestamp, no changes
2. Client calls /poll?since=<timestamp> -> gets changes after it and the
   next cursor in "timestamp"
3. If has_more is true, poll again immediately with the new cursor
4. A client that has been away longer than the retention window must
   resync fully; its cursor may point into deleted history
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import change_tracker
from ..validation import ValidationError, coerce_int
from ..decorators import require_actor
from bookwell.time_utils import parse_iso_datetime


changes_bp = Blueprint("changes", __name__, url_prefix="/api/changes")


@changes_bp.get("/poll")
@require_actor
def poll_route():
    """
    Query params:
        since: cursor from a previous response (ISO-8601, ms precision)
        entity_types: comma list, e.g. "Appointment,BlockedTime"
        location_id: only this location plus global changes

    Response:
        {"timestamp": "2026-03-02T14:00:00.123Z", "changes": [...], "has_more": false}
    """
    try:
        raw_since = request.args.get("since")
        try:
            since = parse_iso_datetime(raw_since)
        except ValueError:
            raise ValidationError("since must be an ISO-8601 timestamp")

        raw_types = request.args.get("entity_types")
        entity_types = raw_types.split(",") if raw_types else None

        raw_location = request.args.get("location_id")
        location_id = coerce_int(raw_location, "location_id") if raw_location else None

        result = change_tracker.poll_since(
            since,
            entity_types=entity_types,
            location_id=location_id,
            limit=current_app.config["CHANGE_POLL_LIMIT"],
        )
        return jsonify(result.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to poll changes")
        return jsonify({"error": "Internal server error"}), 500


@changes_bp.post("/cleanup")
@require_actor
def cleanup_route():
    """
    Request body (optional):
        {"hours_to_keep": 24}

    Response:
        {"deleted_count": 42}
    """
    try:
        data = request.get_json(silent=True) or {}
        hours = data.get("hours_to_keep")
        if hours is None:
            hours = current_app.config["CHANGE_RETENTION_HOURS"]
        deleted = change_tracker.cleanup_older_than(coerce_int(hours, "hours_to_keep"))
        return jsonify({"deleted_count": deleted}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to clean up changes")
        return jsonify({"error": "Internal server error"}), 500
