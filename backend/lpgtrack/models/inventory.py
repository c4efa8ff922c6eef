from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Cylinder(db.Model):
    """
    One physical LPG cylinder, tracked as a single inventory unit.

    IDENTIFIER DESIGN:
    - identifier is the canonical "LPG-<CODE>" form, unique across inventory
    - qr_code is the normalized scan fragment (identifier minus the prefix)
    - Both are derived by qr_service at issuance and never edited afterwards

    STATUS:
    Exactly one of available | sold | maintenance | damaged | missing.
    Only cylinder_service.apply_transition writes this column after issuance,
    and always together with a CylinderMovement row.
    """
    __tablename__ = "cylinders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('available', 'sold', 'maintenance', 'damaged', 'missing')",
            name="ck_cylinders_status",
        ),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_cylinders_unit_cost"),
        db.Index("ix_cylinders_status_weight", "status", "weight_kg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    identifier = db.Column(db.String(80), nullable=False, unique=True)
    qr_code = db.Column(db.String(76), nullable=False, index=True)

    weight_kg = db.Column(db.Numeric(6, 2, asdecimal=False), nullable=False)

    # Authoritative storage in cents (API accepts decimal amounts)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    supplier = db.Column(db.String(120), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="available", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    movements = db.relationship("CylinderMovement", back_populates="cylinder", lazy=True)

    def __repr__(self) -> str:
        return f"<Cylinder id={self.id} identifier={self.identifier!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "qr_code": self.qr_code,
            "weight_kg": float(self.weight_kg) if self.weight_kg is not None else None,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_cost": self.unit_cost_cents / 100 if self.unit_cost_cents is not None else None,
            "supplier": self.supplier,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CylinderMovement(db.Model):
    """
    Append-only audit record of one cylinder status transition.

    Rows are inserted by cylinder_service.apply_transition and never updated
    or deleted. For each cylinder, the newest row's to_status equals the
    cylinder's current status.
    """
    __tablename__ = "cylinder_movements"
    __table_args__ = (
        db.CheckConstraint("from_status <> to_status", name="ck_movements_not_noop"),
        db.Index("ix_movements_cylinder_occurred", "cylinder_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    cylinder_id = db.Column(db.Integer, db.ForeignKey("cylinders.id"), nullable=False, index=True)
    product_identifier = db.Column(db.String(80), nullable=False, index=True)

    from_status = db.Column(db.String(16), nullable=False)
    to_status = db.Column(db.String(16), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)

    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    cylinder = db.relationship("Cylinder", back_populates="movements")

    def __repr__(self) -> str:
        return (
            f"<CylinderMovement id={self.id} {self.product_identifier} "
            f"{self.from_status}->{self.to_status} type={self.movement_type!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cylinder_id": self.cylinder_id,
            "product_identifier": self.product_identifier,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "movement_type": self.movement_type,
            "reason": self.reason,
            "notes": self.notes,
            "reference_number": self.reference_number,
            "occurred_at": to_utc_z(self.occurred_at),
        }
