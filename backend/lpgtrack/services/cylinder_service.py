# Overview: Service-layer operations for cylinders; issuance, lookups, and atomic status transitions.

"""
Cylinder Service - storage side of the lifecycle engine

WHY: lifecycle_service decides whether a transition is legal; this module
makes the decision stick. It reads the snapshot the engine validates against,
and persists the resulting movement together with the new status.

ATOMICITY:
    UPDATE cylinders SET status = :to WHERE id = :id AND status = :from
    INSERT INTO cylinder_movements (...)
    COMMIT

If the UPDATE matches zero rows another writer got there first; the
transaction is rolled back and StaleStateConflict is raised. Nothing is
written unless both statements succeed.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cylinder, CylinderMovement
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    optional_text,
    parse_decimal,
    to_cents,
)
from . import lifecycle_service, qr_service
from .concurrency import StaleStateConflict, lock_for_update, run_with_retry
from .lifecycle_service import INITIAL_STATUS, CylinderSnapshot


# Standard cylinder sizes in kg
STANDARD_WEIGHTS_KG = (Decimal("2.7"), Decimal("11"), Decimal("22"), Decimal("50"))

DUPLICATE_MESSAGE = "Cylinder with this QR code already exists"

__all__ = [
    "STANDARD_WEIGHTS_KG",
    "StaleStateConflict",
    "issue_cylinder",
    "resolve_identifier",
    "lookup_cylinder",
    "check_qr",
    "get_cylinder",
    "list_cylinders",
    "apply_transition",
    "transition_cylinder",
    "list_movements",
    "cylinder_summary",
]


def parse_weight(value) -> Decimal:
    """Coerce weight_kg and require one of STANDARD_WEIGHTS_KG."""
    weight = parse_decimal(value, "weight_kg")
    if weight <= 0:
        raise ValidationError("weight_kg must be > 0")
    for standard in STANDARD_WEIGHTS_KG:
        if weight == standard:
            return standard
    allowed = ", ".join(str(w) for w in STANDARD_WEIGHTS_KG)
    raise ValidationError(f"weight_kg must be one of: {allowed}")


def snapshot(cylinder: Cylinder) -> CylinderSnapshot:
    return CylinderSnapshot(identifier=cylinder.identifier, status=cylinder.status)


def issue_cylinder(
    raw_qr: str,
    *,
    weight_kg,
    unit_cost,
    supplier: str | None = None,
) -> Cylinder:
    """
    Register a new cylinder from a scanned or typed QR payload.

    The identifier is derived deterministically from the payload, so the same
    label always maps to the same identifier and duplicates are detectable.
    New cylinders always start as 'available'.

    Raises:
        ValidationError: unusable QR payload, non-standard weight, bad cost
        ConflictError: a cylinder with the same identifier already exists
    """
    normalized = qr_service.normalize_qr_code(raw_qr)
    if not qr_service.has_alphanumeric_characters(normalized):
        raise ValidationError("qr_code must contain at least one letter or digit")

    identifier = qr_service.derive_full_identifier(normalized)
    if len(identifier) > 80:
        raise ValidationError("qr_code exceeds max length 76")

    weight = parse_weight(weight_kg)
    cost_cents = to_cents(unit_cost, "unit_cost")
    supplier = optional_text(supplier, "supplier", max_length=120)

    existing = db.session.query(Cylinder.id).filter_by(identifier=identifier).first()
    if existing:
        raise ConflictError(DUPLICATE_MESSAGE)

    cylinder = Cylinder(
        identifier=identifier,
        qr_code=qr_service.split_identifier(identifier),
        weight_kg=weight,
        unit_cost_cents=cost_cents,
        supplier=supplier,
        status=INITIAL_STATUS,
    )
    db.session.add(cylinder)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same identifier
        db.session.rollback()
        raise ConflictError(DUPLICATE_MESSAGE)

    current_app.logger.info("Issued cylinder %s (%s kg)", identifier, weight)
    return cylinder


def resolve_identifier(raw: str | None) -> str | None:
    """
    Canonical identifier for a scan, typed code or full identifier.

    Every lookup path goes through here, so a payload that resolves to a
    cylinder in one endpoint resolves to the same cylinder in all of them.
    Returns None for payloads with no letter or digit.
    """
    normalized = qr_service.normalize_qr_code(raw)
    if not qr_service.has_alphanumeric_characters(normalized):
        return None
    return qr_service.derive_full_identifier(normalized)


def lookup_cylinder(raw: str | None) -> Cylinder | None:
    """Resolve a scan, typed code or full identifier to a cylinder."""
    identifier = resolve_identifier(raw)
    if identifier is None:
        return None
    return db.session.query(Cylinder).filter_by(identifier=identifier).first()


def check_qr(raw: str | None) -> dict:
    """
    Existence check run before a transition is attempted.

    Returns the cylinder (and so its current status) when it exists, plus the
    normalized forms the lookup used.
    """
    normalized = qr_service.normalize_qr_code(raw)
    cylinder = lookup_cylinder(raw)
    return {
        "exists": cylinder is not None,
        "cylinder": cylinder.to_dict() if cylinder else None,
        "qr_code": normalized,
        "identifier": qr_service.derive_full_identifier(normalized),
    }


def get_cylinder(identifier: str) -> Cylinder:
    """Like lookup_cylinder(), but a miss raises NotFoundError."""
    cylinder = lookup_cylinder(identifier)
    if cylinder is None:
        raise NotFoundError("Cylinder not found")
    return cylinder


def list_cylinders(
    *,
    status: str | None = None,
    weight_kg=None,
    page: int | None = None,
    per_page: int | None = None,
    max_per_page: int = 100,
) -> dict:
    """
    List cylinders, newest first, with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    q = db.session.query(Cylinder)

    if status is not None:
        lifecycle_service.validate_status(status)
        q = q.filter(Cylinder.status == status)
    if weight_kg is not None:
        q = q.filter(Cylinder.weight_kg == parse_weight(weight_kg))

    q = q.order_by(Cylinder.created_at.desc(), Cylinder.id.desc())

    # If no pagination requested, return all items
    if page is None:
        cylinders = q.all()
        return {
            "items": [c.to_dict() for c in cylinders],
            "count": len(cylinders),
        }

    per_page = min(per_page or 20, max_per_page)
    page = max(page, 1)

    total = q.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    cylinders = q.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [c.to_dict() for c in cylinders],
        "count": len(cylinders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def apply_transition(
    identifier: str,
    target_status: str | None,
    movement_type: str | None,
    *,
    expected_status: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    reference_number: str | None = None,
) -> CylinderMovement:
    """
    Validate and persist one status transition as a single unit of work.

    Args:
        identifier: Scan, code or full identifier of the cylinder
        target_status: Requested status
        movement_type: Classification of the movement
        expected_status: Status the caller saw when it decided to move the
            cylinder; when given it must match storage
        reason, notes, reference_number: Optional movement context

    Returns:
        The persisted CylinderMovement (cylinder status already updated)

    Raises:
        NotFoundError: unknown cylinder
        ValidationError / InvalidTransitionError: rejected by the engine
        StaleStateConflict: storage changed under the caller
    """
    if expected_status is not None:
        lifecycle_service.validate_status(expected_status, "expected_status")

    resolved = resolve_identifier(identifier)
    if resolved is None:
        raise NotFoundError("Cylinder not found")

    cylinder = lock_for_update(
        db.session.query(Cylinder).filter(Cylinder.identifier == resolved)
    ).first()

    try:
        if cylinder is None:
            raise NotFoundError("Cylinder not found")

        current = snapshot(cylinder)
        if expected_status is not None and expected_status != current.status:
            raise StaleStateConflict(current.identifier, expected_status, current.status)

        movement = lifecycle_service.record_cylinder_transition(
            current,
            target_status,
            movement_type,
            reason=reason,
            notes=notes,
            reference_number=reference_number,
        )
    except (NotFoundError, ValueError):
        # Release the row lock before the error reaches the caller
        db.session.rollback()
        raise

    result = db.session.execute(
        update(Cylinder)
        .where(
            Cylinder.id == cylinder.id,
            Cylinder.status == movement.from_status,
        )
        .values(status=movement.to_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.session.rollback()
        actual = db.session.query(Cylinder.status).filter_by(id=cylinder.id).scalar()
        current_app.logger.warning(
            "Stale status for %s: expected %s, found %s",
            current.identifier, movement.from_status, actual,
        )
        raise StaleStateConflict(current.identifier, movement.from_status, actual)

    row = CylinderMovement(
        cylinder_id=cylinder.id,
        product_identifier=movement.product_identifier,
        from_status=movement.from_status,
        to_status=movement.to_status,
        movement_type=movement.movement_type,
        reason=movement.reason,
        notes=movement.notes,
        reference_number=movement.reference_number,
        occurred_at=movement.occurred_at,
    )
    db.session.add(row)
    db.session.commit()
    db.session.refresh(cylinder)

    current_app.logger.info(
        "Cylinder %s moved %s -> %s (%s)",
        movement.product_identifier, movement.from_status, movement.to_status, movement.movement_type,
    )
    return row


def transition_cylinder(identifier: str, target_status, movement_type, **kwargs) -> CylinderMovement:
    """
    apply_transition() with the stale-state policy applied.

    Callers that pinned expected_status get the conflict back directly.
    Otherwise the snapshot is re-read and the transition re-validated once.
    """
    def _op() -> CylinderMovement:
        return apply_transition(identifier, target_status, movement_type, **kwargs)

    if kwargs.get("expected_status") is not None:
        return _op()
    return run_with_retry(_op, retry_on=(StaleStateConflict,))


def list_movements(
    *,
    identifier: str | None = None,
    to_status: str | None = None,
    weight_kg=None,
    limit: int = 200,
) -> list[CylinderMovement]:
    """
    Movement history, newest first.

    Args:
        identifier: Restrict to one cylinder (any scan/code form accepted)
        to_status: Only movements into this status
        weight_kg: Only movements of cylinders of this size
        limit: Maximum results
    """
    q = db.session.query(CylinderMovement)

    if identifier is not None:
        resolved = resolve_identifier(identifier)
        if resolved is None:
            return []
        q = q.filter(CylinderMovement.product_identifier == resolved)
    if to_status is not None:
        lifecycle_service.validate_status(to_status, "status")
        q = q.filter(CylinderMovement.to_status == to_status)
    if weight_kg is not None:
        q = q.join(Cylinder).filter(Cylinder.weight_kg == parse_weight(weight_kg))

    q = q.order_by(CylinderMovement.occurred_at.desc(), CylinderMovement.id.desc())
    return q.limit(max(limit, 1)).all()


def cylinder_summary() -> dict:
    """
    Inventory counts by status and by size.

    available_value_cents is the cost of everything still on hand.
    """
    by_status = {status: 0 for status in sorted(lifecycle_service.VALID_STATUSES)}
    for status, count in db.session.query(Cylinder.status, func.count(Cylinder.id)).group_by(Cylinder.status):
        by_status[status] = count

    by_weight = []
    rows = (
        db.session.query(Cylinder.weight_kg, Cylinder.status, func.count(Cylinder.id))
        .group_by(Cylinder.weight_kg, Cylinder.status)
        .order_by(Cylinder.weight_kg)
        .all()
    )
    grouped: dict[Decimal, dict] = {}
    for weight, status, count in rows:
        entry = grouped.setdefault(Decimal(str(weight)), {"total": 0, "by_status": {}})
        entry["total"] += count
        entry["by_status"][status] = count
    for weight, entry in sorted(grouped.items()):
        by_weight.append({"weight_kg": float(weight), **entry})

    available_value = (
        db.session.query(func.coalesce(func.sum(Cylinder.unit_cost_cents), 0))
        .filter(Cylinder.status == INITIAL_STATUS)
        .scalar()
    )

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_weight": by_weight,
        "available_value_cents": int(available_value or 0),
    }
