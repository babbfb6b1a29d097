from __future__ import annotations

from ..extensions import db
from bookwell.time_utils import to_utc_z


class Location(db.Model):
    """
    A physical business location (salon, clinic, branch).

    Read-only to the booking engine: rows are maintained by the catalog
    owner. Appointments and blocked time are scoped to one location, but a
    staff member's calendar spans all of them.
    """
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StaffMember(db.Model):
    __tablename__ = "staff_members"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    # Calendar color, display only
    color = db.Column(db.String(16), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<StaffMember id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "color": self.color,
            "is_active": self.is_active,
            "location_ids": [sl.location_id for sl in self.locations if sl.is_active],
        }


class StaffLocation(db.Model):
    """
    Which locations a staff member works at.

    Only used to enumerate candidate staff for a location. Availability
    itself never consults this table: conflicts are location-independent.
    """
    __tablename__ = "staff_locations"
    __table_args__ = (
        db.UniqueConstraint("staff_id", "location_id", name="uq_staff_locations_staff_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    staff = db.relationship("StaffMember", backref=db.backref("locations", lazy=True))
    location = db.relationship("Location", backref=db.backref("staff_links", lazy=True))


class Service(db.Model):
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Service id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "duration_minutes": self.duration_minutes,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
        }


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
        }
