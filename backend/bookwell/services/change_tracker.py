# Overview: Service-layer operations for the change log; recording, polling and retention.

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from flask import current_app

from ..extensions import db
from ..models import DataChange
from ..validation import ValidationError
from bookwell.time_utils import utcnow, truncate_to_millis, to_utc_ms_z
"""
Bookwell Change Log Invariants (authoritative)

- Every domain mutation is recorded as one CREATE / UPDATE / DELETE record.
- Recording is best-effort: it runs after the domain commit and its failure
  is logged, never raised. It is not a transactional ledger.
- Records are append-only; the only delete is retention cleanup, which does
  not care whether any client has consumed them.
- Timestamps are millisecond-precise and strictly increasing within a
  process, so (timestamp > cursor) paging never skips or repeats a record.
- Clients own their cursor; the server keeps no per-client state.
"""


CHANGE_TYPES = ("CREATE", "UPDATE", "DELETE")

ENTITY_TYPES = frozenset({
    "User",
    "StaffMember",
    "Client",
    "Location",
    "Service",
    "Product",
    "ProductLocation",
    "Appointment",
    "BlockedTime",
    "Transaction",
    "Transfer",
    "InventoryAudit",
})

DEFAULT_POLL_LIMIT = 500
DEFAULT_RETENTION_HOURS = 24

_clock_lock = threading.Lock()
_MILLISECOND = timedelta(milliseconds=1)


@dataclass
class PollResult:
    timestamp: datetime
    changes: list[DataChange] = field(default_factory=list)
    has_more: bool = False

    def to_dict(self) -> dict:
        return {
            "timestamp": to_utc_ms_z(self.timestamp),
            "changes": [c.to_dict() for c in self.changes],
            "has_more": self.has_more,
        }


def validate_entity_types(entity_types: Iterable[str] | None) -> list[str] | None:
    if entity_types is None:
        return None
    cleaned = [t.strip() for t in entity_types if t and t.strip()]
    unknown = sorted(set(cleaned) - ENTITY_TYPES)
    if unknown:
        raise ValidationError(
            f"Unknown entity type(s): {', '.join(unknown)}. Must be among: {', '.join(sorted(ENTITY_TYPES))}"
        )
    return cleaned or None


def latest_change_timestamp() -> Optional[datetime]:
    return db.session.query(db.func.max(DataChange.timestamp)).scalar()


def _next_timestamp() -> datetime:
    """Now, at millisecond precision, bumped past the latest stored record."""
    now = truncate_to_millis(utcnow())
    latest = latest_change_timestamp()
    if latest is not None and now <= latest:
        now = latest + _MILLISECOND
    return now


def record_change(
    *,
    entity_type: str,
    entity_id,
    change_type: str,
    location_id: int | None = None,
    user_id: str | None = None,
) -> DataChange | None:
    """
    Append one change record and commit it.

    Fire-and-forget: call AFTER the triggering mutation has committed. Any
    failure here is logged and swallowed so it can never fail or roll back
    that mutation.

    Returns:
        The stored record, or None if recording failed
    """
    try:
        if entity_type not in ENTITY_TYPES:
            raise ValidationError(f"Unknown entity type '{entity_type}'")
        if change_type not in CHANGE_TYPES:
            raise ValidationError(f"Unknown change type '{change_type}'")

        with _clock_lock:
            change = DataChange(
                entity_type=entity_type,
                entity_id=str(entity_id),
                change_type=change_type,
                location_id=location_id,
                user_id=str(user_id) if user_id is not None else None,
                timestamp=_next_timestamp(),
            )
            db.session.add(change)
            db.session.commit()
        return change
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to record %s change for %s %s", change_type, entity_type, entity_id
        )
        return None


def poll_since(
    since: Optional[datetime],
    *,
    entity_types: Iterable[str] | None = None,
    location_id: int | None = None,
    limit: int = DEFAULT_POLL_LIMIT,
) -> PollResult:
    """
    Changes strictly after the since cursor, oldest first.

    - since=None: baseline request; returns the latest recorded timestamp
      (or now, on an empty log) and no changes
    - entity_types: optional filter
    - location_id: optional filter; global changes (no location) always pass
    - limit: page size; has_more is True when the page is full and the
      client should poll again immediately with the returned timestamp
    """
    if since is None:
        latest = latest_change_timestamp()
        if latest is None:
            # One tick back: a record written within this millisecond is still after it
            latest = truncate_to_millis(utcnow()) - _MILLISECOND
        return PollResult(timestamp=latest, changes=[], has_more=False)

    if limit is None or limit <= 0:
        raise ValidationError("limit must be > 0")

    types = validate_entity_types(entity_types)

    q = db.session.query(DataChange).filter(DataChange.timestamp > since)
    if types:
        q = q.filter(DataChange.entity_type.in_(types))
    if location_id is not None:
        q = q.filter(
            db.or_(
                DataChange.location_id == location_id,
                DataChange.location_id.is_(None),
            )
        )

    changes = q.order_by(DataChange.timestamp.asc(), DataChange.id.asc()).limit(limit).all()

    next_cursor = changes[-1].timestamp if changes else since
    return PollResult(timestamp=next_cursor, changes=changes, has_more=len(changes) == limit)


def cleanup_older_than(retention_hours: int = DEFAULT_RETENTION_HOURS) -> int:
    """
    Delete change records older than retention_hours.

    Unconditional: clients that have not polled within the window must do a
    full resync.

    Returns:
        Number of records deleted
    """
    if retention_hours is None or retention_hours < 0:
        raise ValidationError("hours_to_keep must be >= 0")

    cutoff = utcnow() - timedelta(hours=retention_hours)
    deleted = db.session.query(DataChange).filter(
        DataChange.timestamp < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info("Deleted %s change records older than %s hours", deleted, retention_hours)
    return deleted
