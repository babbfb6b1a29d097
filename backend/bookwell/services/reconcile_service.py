# Overview: Service-layer partial-update reconciler for appointment service and product lines.

"""
Bookwell Partial-Update Reconciler

================================================================================
PURPOSE: Merge a sparse edit of an appointment's sub-collections with the
         persisted rows, without losing row identity
================================================================================

A patch may carry `additional_services` and/or `products`. Each is a list of
line items submitted together from one form, mixing rows that already exist
with rows the user just added.

CLASSIFICATION (at the request boundary, see classify_item):
    NewItem(catalog_ref, ...)    id carries a transient marker ("temp-",
                                 "service-", "product-") AND names a catalog
                                 reference (service_id / product_id)
    ExistingItem(persisted_id)   anything else that names a row id
    Unrecognized(reason)         transient marker without a catalog
                                 reference, or unparseable values

RULES:
1. A collection key absent from the patch is never touched
2. A collection with no NewItem is never touched (safe resubmission)
3. Otherwise: persisted additional rows not echoed back as ExistingItem are
   deleted, then the NewItems are inserted
4. The main service (position 0) is never deleted
5. A NewItem is dropped if it would duplicate the main service or another
   kept/new line's service, if its catalog reference is unknown or inactive,
   or (products) if its quantity is below 1
6. Nothing here raises on ambiguous items: every drop becomes a warning the
   caller must surface

Re-applying the same patch yields the same lines: the second run deletes the
lines the first run inserted (they are not echoed back) and inserts the same
catalog references again.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union

from flask import current_app

from ..extensions import db
from ..models import Appointment, AppointmentProduct, AppointmentService, Product, Service, StaffMember
from ..validation import ValidationError, coerce_int, validate_duration, validate_price


TRANSIENT_PREFIXES = ("temp-", "service-", "product-")

KIND_SERVICE = "service"
KIND_PRODUCT = "product"

# patch key -> (kind, catalog reference field)
COLLECTIONS = {
    "additional_services": (KIND_SERVICE, "service_id"),
    "products": (KIND_PRODUCT, "product_id"),
}


@dataclass(frozen=True)
class NewItem:
    """A line the caller just added; not persisted yet."""
    catalog_ref: int
    client_key: str
    staff_id: int | None = None
    price_cents: int | None = None
    duration_minutes: int | None = None
    quantity: int = 1


@dataclass(frozen=True)
class ExistingItem:
    """A line echoed back by the caller; identified by its row id."""
    persisted_id: int


@dataclass(frozen=True)
class Unrecognized:
    raw: Any
    reason: str


LineItem = Union[NewItem, ExistingItem, Unrecognized]


@dataclass
class CollectionOps:
    delete_ids: list[int] = field(default_factory=list)
    inserts: list[NewItem] = field(default_factory=list)


@dataclass
class ServiceOps:
    """
    Deterministic result of reconcile().

    services / products are None when that collection is left untouched.
    """
    services: CollectionOps | None = None
    products: CollectionOps | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.services is None and self.products is None


def is_transient_id(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower().startswith(TRANSIENT_PREFIXES)


def _optional_int(raw: dict, key: str) -> int | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    return coerce_int(value, key)


def classify_item(raw: Any, ref_field: str) -> LineItem:
    """
    Parse one incoming line item into its explicit variant.

    Args:
        raw: Item as received (dict expected)
        ref_field: "service_id" or "product_id"

    Never raises; malformed input comes back as Unrecognized.
    """
    if not isinstance(raw, dict):
        return Unrecognized(raw, "item is not an object")

    item_id = raw.get("id")

    if is_transient_id(item_id):
        if raw.get(ref_field) in (None, ""):
            return Unrecognized(raw, f"new item {item_id} has no {ref_field}")
        try:
            quantity = _optional_int(raw, "quantity")
            return NewItem(
                catalog_ref=coerce_int(raw[ref_field], ref_field),
                client_key=item_id.strip(),
                staff_id=_optional_int(raw, "staff_id"),
                price_cents=_optional_int(raw, "price_cents"),
                duration_minutes=_optional_int(raw, "duration_minutes"),
                quantity=1 if quantity is None else quantity,
            )
        except ValidationError as exc:
            return Unrecognized(raw, f"new item {item_id}: {exc}")

    if item_id in (None, ""):
        return Unrecognized(raw, "item has no id")
    try:
        return ExistingItem(persisted_id=coerce_int(item_id, "id"))
    except ValidationError:
        return Unrecognized(raw, f"item id {item_id!r} is neither a row id nor a new-item marker")


def _catalog_rows(kind: str, refs: set[int]) -> dict[int, Any]:
    if not refs:
        return {}
    model = Service if kind == KIND_SERVICE else Product
    return {row.id: row for row in db.session.query(model).filter(model.id.in_(refs)).all()}


def _known_staff(ids: set[int]) -> set[int]:
    if not ids:
        return set()
    rows = db.session.query(StaffMember.id).filter(
        StaffMember.id.in_(ids), StaffMember.is_active.is_(True)
    ).all()
    return {r[0] for r in rows}


def _reconcile_collection(appointment: Appointment, kind: str, ref_field: str, items: list, warnings: list[str]) -> CollectionOps | None:
    classified = [classify_item(raw, ref_field) for raw in items]

    for c in classified:
        if isinstance(c, Unrecognized):
            warnings.append(f"Dropped {kind} item: {c.reason}")

    new_items = [c for c in classified if isinstance(c, NewItem)]
    if not new_items:
        return None

    if kind == KIND_SERVICE:
        main = appointment.main_service
        persisted = appointment.additional_services
    else:
        main = None
        persisted = list(appointment.products)

    persisted_by_id = {row.id: row for row in persisted}
    echoed = {c.persisted_id for c in classified if isinstance(c, ExistingItem)}

    for pid in sorted(echoed - set(persisted_by_id)):
        warnings.append(f"Ignored {kind} item {pid}: not a line on appointment {appointment.id}")

    delete_ids = sorted(pid for pid in persisted_by_id if pid not in echoed)
    kept = [persisted_by_id[pid] for pid in sorted(echoed & set(persisted_by_id))]

    catalog = _catalog_rows(kind, {n.catalog_ref for n in new_items})
    staff_ok = _known_staff({n.staff_id for n in new_items if n.staff_id is not None})

    taken: set[int] = set()
    if kind == KIND_SERVICE:
        if main is not None:
            taken.add(main.service_id)
        taken.update(row.service_id for row in kept)

    max_minutes = current_app.config["MAX_APPOINTMENT_MINUTES"]
    inserts: list[NewItem] = []
    for n in new_items:
        entry = catalog.get(n.catalog_ref)
        if entry is None or not entry.is_active:
            warnings.append(f"Dropped {kind} item {n.client_key}: {ref_field} {n.catalog_ref} not found")
            continue

        if kind == KIND_SERVICE:
            if n.catalog_ref in taken:
                if main is not None and n.catalog_ref == main.service_id:
                    warnings.append(f"Dropped service item {n.client_key}: service {n.catalog_ref} is the main service")
                else:
                    warnings.append(f"Dropped service item {n.client_key}: service {n.catalog_ref} is already on the appointment")
                continue
            if n.staff_id is not None and n.staff_id not in staff_ok:
                warnings.append(f"Dropped service item {n.client_key}: staff member {n.staff_id} not found")
                continue
        elif n.quantity < 1:
            warnings.append(f"Dropped product item {n.client_key}: quantity must be >= 1")
            continue

        try:
            price = validate_price(entry.price_cents if n.price_cents is None else n.price_cents, "price_cents")
            duration = None
            if kind == KIND_SERVICE:
                duration = validate_duration(
                    entry.duration_minutes if n.duration_minutes is None else n.duration_minutes,
                    max_minutes=max_minutes,
                )
        except ValidationError as exc:
            warnings.append(f"Dropped {kind} item {n.client_key}: {exc}")
            continue

        if kind == KIND_SERVICE:
            taken.add(n.catalog_ref)
        inserts.append(replace(n, price_cents=price, duration_minutes=duration))

    return CollectionOps(delete_ids=delete_ids, inserts=inserts)


def reconcile(appointment: Appointment, patch: dict) -> ServiceOps:
    """
    Plan the sub-collection changes a patch implies. Does not mutate anything.

    Args:
        appointment: Persisted appointment with its lines loaded
        patch: Raw update payload; only COLLECTIONS keys are read

    Returns:
        ServiceOps with per-collection delete/insert plans and warnings

    Raises:
        ValidationError: If a collection key is present but not a list
    """
    ops = ServiceOps()
    for key, (kind, ref_field) in COLLECTIONS.items():
        if key not in patch:
            continue
        items = patch[key]
        if items is None:
            continue
        if not isinstance(items, list):
            raise ValidationError(f"{key} must be a list")
        planned = _reconcile_collection(appointment, kind, ref_field, items, ops.warnings)
        if kind == KIND_SERVICE:
            ops.services = planned
        else:
            ops.products = planned
    return ops


def initial_ops(appointment: Appointment, payload: dict) -> ServiceOps:
    """
    Plan the extra lines of a new booking.

    A new appointment has nothing persisted to echo back, so every item is
    treated as new; items keep their catalog checks and warnings.
    """
    patch = {}
    for key, (kind, _ref_field) in COLLECTIONS.items():
        items = payload.get(key)
        if items is None:
            continue
        if not isinstance(items, list):
            raise ValidationError(f"{key} must be a list")
        patch[key] = [
            {**raw, "id": f"temp-{kind}-{index}"} if isinstance(raw, dict) else raw
            for index, raw in enumerate(items)
        ]
    return reconcile(appointment, patch)


def apply_ops(appointment: Appointment, ops: ServiceOps) -> Appointment:
    """
    Apply a reconcile() plan to the appointment (not committed).

    Deletes are flushed before inserts so a replaced line can be re-added
    with the same service_id without tripping the uniqueness constraint.
    """
    if ops.services is not None:
        doomed = set(ops.services.delete_ids)
        for line in [s for s in appointment.additional_services if s.id in doomed]:
            appointment.services.remove(line)
        db.session.flush()

        for n in ops.services.inserts:
            appointment.services.append(
                AppointmentService(
                    service_id=n.catalog_ref,
                    staff_id=n.staff_id,
                    price_cents=n.price_cents,
                    duration_minutes=n.duration_minutes,
                    completed=False,
                )
            )
        for position, line in enumerate(appointment.services):
            line.position = position

    if ops.products is not None:
        doomed = set(ops.products.delete_ids)
        for line in [p for p in appointment.products if p.id in doomed]:
            appointment.products.remove(line)
        db.session.flush()

        for n in ops.products.inserts:
            appointment.products.append(
                AppointmentProduct(
                    product_id=n.catalog_ref,
                    quantity=n.quantity,
                    price_cents=n.price_cents,
                )
            )

    return appointment
