# Overview: Cylinder status state machine; validates transitions and builds movement records.

"""
Cylinder Lifecycle Engine

================================================================================
PURPOSE: Every cylinder has exactly one status, and every change is a movement
================================================================================

STATES (flat, no hierarchy):
    available | sold | maintenance | damaged | missing

    available is assigned at issuance (cylinder_service.issue_cylinder) and is
    never produced here. There is no terminal state.

TRANSITIONS:
    Any status may move to any other status. The only rejected transition is
    the no-op (X -> X). ALLOWED_TRANSITIONS spells the graph out explicitly so
    a stricter policy is a table edit, not a code change.

RULES:
1. This module never reads or writes storage. Callers pass the cylinder's
   current status (a snapshot) and persist the returned Movement.
2. The returned Movement and the status update form one unit of work; the
   storage layer applies both or neither (see cylinder_service.apply_transition).
3. No retries. Any failure is reported to the caller immediately.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping

from ..time_utils import utcnow, to_utc_z
from ..validation import ValidationError, optional_text


# Valid cylinder states (must match models/inventory.py)
VALID_STATUSES = {"available", "sold", "maintenance", "damaged", "missing"}
CylinderStatus = Literal["available", "sold", "maintenance", "damaged", "missing"]
INITIAL_STATUS = "available"

# Common classifications; movement_type itself is free text
MOVEMENT_TYPES = {"status_change", "sale", "purchase", "maintenance", "damage", "found", "lost"}

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    status: frozenset(VALID_STATUSES - {status})
    for status in VALID_STATUSES
}

ALREADY_IN_STATUS_MESSAGE = "Product is already in the specified status"


class LifecycleError(ValueError):
    """
    Raised when a cylinder status transition violates the lifecycle rules.

    This is a domain error, not a technical error.
    """
    pass


class InvalidTransitionError(LifecycleError):
    """No-op transition, or a pair the transition table forbids."""
    pass


@dataclass(frozen=True)
class CylinderSnapshot:
    """The storage layer's view of a cylinder at read time."""
    identifier: str
    status: str


@dataclass(frozen=True)
class Movement:
    """
    One accepted status transition, ready to be persisted.

    product_identifier may be None when the engine was called with a bare
    status; the storage layer binds it before writing.
    """
    from_status: str
    to_status: str
    movement_type: str
    product_identifier: str | None = None
    reason: str | None = None
    notes: str | None = None
    reference_number: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "product_identifier": self.product_identifier,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "movement_type": self.movement_type,
            "reason": self.reason,
            "notes": self.notes,
            "reference_number": self.reference_number,
            "occurred_at": to_utc_z(self.occurred_at),
        }


def validate_status(status: str | None, field_name: str = "status") -> None:
    """
    Raise ValidationError unless status is one of VALID_STATUSES.
    """
    if not isinstance(status, str) or status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid {field_name} '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(
    from_status: str,
    to_status: str,
    allowed_transitions: Mapping[str, frozenset[str]] | None = None,
) -> bool:
    """
    Check a transition against the lifecycle rules.

    Same-state transitions are never allowed. With the default table every
    other pair of valid statuses is allowed.
    """
    validate_status(from_status, "from_status")
    validate_status(to_status, "to_status")

    if from_status == to_status:
        return False

    table = ALLOWED_TRANSITIONS if allowed_transitions is None else allowed_transitions
    return to_status in table.get(from_status, frozenset())


def record_transition(
    current_status: str,
    target_status: str | None,
    movement_type: str | None,
    *,
    product_identifier: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    reference_number: str | None = None,
    occurred_at: datetime | None = None,
    allowed_transitions: Mapping[str, frozenset[str]] | None = None,
) -> Movement:
    """
    Validate a single status change and build its Movement.

    Validation order:
        1. target == current            -> InvalidTransitionError
        2. missing/blank/unknown fields -> ValidationError
        3. pair forbidden by the table  -> InvalidTransitionError

    Args:
        current_status: The cylinder's persisted status, as read by the caller
        target_status: Requested status
        movement_type: Classification (sale, maintenance, ...); free text
        product_identifier: Cylinder identifier; optional here, but must not
            be blank when given
        reason, notes, reference_number: Optional context; blank -> None
        occurred_at: Override for the movement timestamp (defaults to now)
        allowed_transitions: Stricter transition table (defaults to permissive)

    Returns:
        The Movement to persist alongside the status update.
    """
    if target_status is not None and target_status == current_status:
        raise InvalidTransitionError(ALREADY_IN_STATUS_MESSAGE)

    if target_status is None or not str(target_status).strip():
        raise ValidationError("to_status is required")
    movement_type = optional_text(movement_type, "movement_type", max_length=32)
    if movement_type is None:
        raise ValidationError("movement_type is required")
    if product_identifier is not None and not str(product_identifier).strip():
        raise ValidationError("product_id is required")

    validate_status(current_status, "from_status")
    validate_status(target_status, "to_status")

    if not can_transition(current_status, target_status, allowed_transitions):
        raise InvalidTransitionError(
            f"Cannot move cylinder from '{current_status}' to '{target_status}'"
        )

    return Movement(
        from_status=current_status,
        to_status=target_status,
        movement_type=movement_type,
        product_identifier=product_identifier.strip() if product_identifier else None,
        reason=optional_text(reason, "reason", max_length=255),
        notes=optional_text(notes, "notes"),
        reference_number=optional_text(reference_number, "reference_number", max_length=64),
        occurred_at=occurred_at or utcnow(),
    )


def record_cylinder_transition(
    snapshot: CylinderSnapshot,
    target_status: str | None,
    movement_type: str | None,
    **kwargs,
) -> Movement:
    """record_transition() bound to a snapshot; the identifier is required."""
    if not snapshot.identifier or not snapshot.identifier.strip():
        if target_status is not None and target_status == snapshot.status:
            raise InvalidTransitionError(ALREADY_IN_STATUS_MESSAGE)
        raise ValidationError("product_id is required")
    return record_transition(
        snapshot.status,
        target_status,
        movement_type,
        product_identifier=snapshot.identifier,
        **kwargs,
    )
