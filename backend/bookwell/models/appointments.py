from __future__ import annotations

from ..extensions import db
from bookwell.time_utils import to_utc_z, add_minutes


class Appointment(db.Model):
    """
    A booked service appointment.

    LIFECYCLE (see status_service):
        pending -> confirmed -> checked-in -> completed
        any non-terminal -> cancelled | no-show

    completed, cancelled and no-show are absorbing.

    SERVICES:
    - services[0] is the main service and is never removed by partial updates
    - services[1:] are additional services, each optionally assigned to its
      own staff member
    - no two service lines on one appointment share a service_id

    Money fields are carried as opaque payload; this engine never computes
    them.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_staff_start", "staff_id", "start_at"),
        db.Index("ix_appointments_location_start", "location_id", "start_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_reference = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Client is owned by an external collaborator; we only keep its identifier
    client_id = db.Column(db.String(64), nullable=False, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    start_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=True)
    original_amount_cents = db.Column(db.Integer, nullable=True)
    final_amount_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    staff = db.relationship("StaffMember", backref=db.backref("appointments", lazy=True))
    location = db.relationship("Location", backref=db.backref("appointments", lazy=True))

    services = db.relationship(
        "AppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by=lambda: [AppointmentService.position, AppointmentService.id],
        lazy=True,
    )
    products = db.relationship(
        "AppointmentProduct",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentProduct.id",
        lazy=True,
    )
    status_history = db.relationship(
        "AppointmentStatusHistory",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by=lambda: [AppointmentStatusHistory.occurred_at, AppointmentStatusHistory.id],
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} ref={self.booking_reference!r} status={self.status!r}>"

    @property
    def end_at(self):
        return add_minutes(self.start_at, self.duration_minutes)

    @property
    def main_service(self) -> "AppointmentService | None":
        return self.services[0] if self.services else None

    @property
    def additional_services(self) -> list["AppointmentService"]:
        return list(self.services[1:])

    def involved_staff_ids(self) -> set[int]:
        """Primary staff plus every staff member sub-assigned to a service line."""
        ids = {self.staff_id}
        ids.update(s.staff_id for s in self.services if s.staff_id is not None)
        return ids

    def history_entries(self) -> list[dict]:
        """
        Status history as serialized entries.

        Rows created before history tracking existed have none; those get a
        single synthesized 'pending' entry stamped with created_at.
        """
        if self.status_history:
            return [h.to_dict() for h in self.status_history]
        return [{
            "status": "pending",
            "timestamp": to_utc_z(self.created_at),
            "updated_by": "System",
        }]

    def to_dict(self) -> dict:
        main = self.main_service
        return {
            "id": self.id,
            "booking_reference": self.booking_reference,
            "client_id": self.client_id,
            "staff_id": self.staff_id,
            "location_id": self.location_id,
            "service_id": main.service_id if main else None,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "status_history": self.history_entries(),
            "notes": self.notes,
            "total_price_cents": self.total_price_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "original_amount_cents": self.original_amount_cents,
            "final_amount_cents": self.final_amount_cents,
            "services": [s.to_dict() for s in self.services],
            "additional_services": [s.to_dict() for s in self.additional_services],
            "products": [p.to_dict() for p in self.products],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AppointmentService(db.Model):
    """
    One service line on an appointment.

    position 0 is the main service. staff_id is an optional sub-assignment,
    independent of the appointment's primary staff.
    """
    __tablename__ = "appointment_services"
    __table_args__ = (
        db.UniqueConstraint("appointment_id", "service_id", name="uq_appointment_services_appointment_service"),
        db.Index("ix_appointment_services_staff", "staff_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=True)

    position = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    completed = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    appointment = db.relationship("Appointment", back_populates="services")
    service = db.relationship("Service")
    staff = db.relationship("StaffMember")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "name": self.service.name if self.service else None,
            "staff_id": self.staff_id,
            "position": self.position,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
            "completed": self.completed,
        }


class AppointmentProduct(db.Model):
    __tablename__ = "appointment_products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_appointment_products_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    appointment = db.relationship("Appointment", back_populates="products")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
        }


class AppointmentStatusHistory(db.Model):
    """
    Append-only status history row.

    IMMUTABLE: rows are only ever inserted by status_service.apply_transition
    (and once at booking time). Never updated or deleted except by cascade
    when the appointment itself is deleted.
    """
    __tablename__ = "appointment_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_by = db.Column(db.String(120), nullable=False, default="System")

    appointment = db.relationship("Appointment", back_populates="status_history")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": to_utc_z(self.occurred_at),
            "updated_by": self.updated_by,
        }


class BlockedTime(db.Model):
    """
    Staff time reserved without a client (breaks, training, personal time).

    Always a conflict source; never subject to appointment status rules.
    """
    __tablename__ = "blocked_times"
    __table_args__ = (
        db.Index("ix_blocked_times_staff_start", "staff_id", "start_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    staff = db.relationship("StaffMember", backref=db.backref("blocked_times", lazy=True))
    location = db.relationship("Location")

    @property
    def end_at(self):
        return add_minutes(self.start_at, self.duration_minutes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "location_id": self.location_id,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
            "duration_minutes": self.duration_minutes,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class BookingSequence(db.Model):
    """
    Atomic per-location booking reference counter.

    WHY: Prevent two concurrent bookings at one location from being handed
    the same human-readable reference.
    """
    __tablename__ = "booking_sequences"
    __table_args__ = (
        db.UniqueConstraint("location_id", name="uq_booking_sequences_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
