from __future__ import annotations

from ..extensions import db
from bookwell.time_utils import to_utc_ms_z


class DataChange(db.Model):
    """
    Change-log record for poll-based client synchronization.

    INVARIANTS:
    - Append-only: rows are never updated
    - Rows are removed only by retention cleanup (change_tracker.cleanup_older_than)
    - A record outlives the entity it describes (DELETE events included)
    - location_id NULL means a global change, visible to every poller
    - timestamp has millisecond precision and is what clients use as cursor
    """
    __tablename__ = "data_changes"
    __table_args__ = (
        db.Index("ix_data_changes_entity_type_timestamp", "entity_type", "timestamp"),
        db.Index("ix_data_changes_location_timestamp", "location_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    change_type = db.Column(db.String(8), nullable=False)

    # No FK: the record must survive deletion of the location it mentions
    location_id = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.String(64), nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<DataChange id={self.id} {self.change_type} "
            f"{self.entity_type}:{self.entity_id} at={self.timestamp}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "change_type": self.change_type,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "timestamp": to_utc_ms_z(self.timestamp),
        }
