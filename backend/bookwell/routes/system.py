# backend/bookwell/routes/system.py
"""
System health and version endpoints.

Provides health checks for the booking store and the change log, and
version information for deployment debugging.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Appointment, DataChange, Location, StaffMember
from ..services.change_tracker import latest_change_timestamp
from bookwell.time_utils import utcnow, to_utc_ms_z

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        staff_count = db.session.query(StaffMember).count()
        appointment_count = db.session.query(Appointment).count()

        elapsed_ms = (time.time() - start_time) * 1000

        if location_count == 0:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "No locations configured",
                "details": {"locations": 0, "staff_members": staff_count, "appointments": appointment_count},
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "staff_members": staff_count,
                "appointments": appointment_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_change_log_health() -> dict:
    """
    Check the change log is readable and report its size and head.
    """
    start_time = time.time()
    try:
        record_count = db.session.query(DataChange).count()
        latest = latest_change_timestamp()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "records": record_count,
                "latest_timestamp": to_utc_ms_z(latest),
                "retention_hours": current_app.config["CHANGE_RETENTION_HOURS"],
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Change log health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Change log error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: One or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    change_log_health = check_change_log_health()

    all_checks = [database_health, change_log_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "change_log": change_log_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Version endpoint for deployment debugging.

    Does NOT expose secret keys, database credentials or internal paths.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
