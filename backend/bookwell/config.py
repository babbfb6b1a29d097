# backend/bookwell/config.py
from __future__ import annotations
import os

class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bookwell.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bookwell.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Change log: retention window and per-poll page size
    CHANGE_RETENTION_HOURS = int(os.environ.get("CHANGE_RETENTION_HOURS", "24"))
    CHANGE_POLL_LIMIT = int(os.environ.get("CHANGE_POLL_LIMIT", "500"))

    # Upper bound on a single appointment; also bounds availability queries
    MAX_APPOINTMENT_MINUTES = int(os.environ.get("MAX_APPOINTMENT_MINUTES", "720"))
    MAX_BLOCKED_MINUTES = int(os.environ.get("MAX_BLOCKED_MINUTES", "1440"))

    # Turnover minutes kept free around existing appointments; 0 keeps back-to-back bookings legal
    APPOINTMENT_BUFFER_BEFORE_MINUTES = int(os.environ.get("APPOINTMENT_BUFFER_BEFORE_MINUTES", "0"))
    APPOINTMENT_BUFFER_AFTER_MINUTES = int(os.environ.get("APPOINTMENT_BUFFER_AFTER_MINUTES", "0"))

    BOOKING_REFERENCE_PREFIX = os.environ.get("BOOKING_REFERENCE_PREFIX", "BK")

    # Browser origins allowed to call the API directly (dev frontends)
    CORS_ALLOWED_ORIGINS = {
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    }
