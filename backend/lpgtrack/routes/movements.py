# backend/lpgtrack/routes/movements.py
"""
Cylinder Movement API Routes

- POST /api/movements - Move a cylinder to a new status (records the movement)
- GET  /api/movements - Movement history, newest first

WHY ONE WRITE ENDPOINT:
A movement is the only way a cylinder's status changes. There is no
"update status" endpoint and no way to edit or delete a movement.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import cylinder_service
from ..services.concurrency import StaleStateConflict
from ..services.lifecycle_service import LifecycleError
from ..validation import ValidationError, NotFoundError


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


@movements_bp.post("")
def create_movement_route():
    """
    Record a status transition for one cylinder.

    Request body:
        {
            "product_id": "LPG-05285AWI1ES04",   // identifier or raw QR scan
            "to_status": "sold",
            "movement_type": "sale",
            "reason": "Customer purchase",        // optional
            "notes": "...",                       // optional
            "reference_number": "OR-10023",       // optional
            "expected_status": "available"        // optional; pins the snapshot
        }

    Response (201):
        {"movement": {...}, "cylinder": {...}}

    Error responses:
        400: Missing fields, unknown status, or already in that status
        404: Cylinder not found
        409: Cylinder status changed since expected_status was read
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    product_id = payload.get("product_id")
    if not product_id or not payload.get("to_status") or not payload.get("movement_type"):
        return jsonify({"error": "Missing required fields: product_id, to_status, movement_type"}), 400

    try:
        movement = cylinder_service.transition_cylinder(
            str(product_id),
            payload.get("to_status"),
            payload.get("movement_type"),
            expected_status=payload.get("expected_status") or None,
            reason=payload.get("reason"),
            notes=payload.get("notes"),
            reference_number=payload.get("reference_number"),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "cylinder": movement.cylinder.to_dict(),
        }), 201

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StaleStateConflict as e:
        return jsonify({
            "error": str(e),
            "code": "STALE_STATE",
            "current_status": e.actual_status,
        }), 409
    except (LifecycleError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record cylinder movement")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.get("")
def list_movements_route():
    """
    Movement history.

    Query parameters:
        product_id (optional): identifier or raw QR scan
        status (optional): only movements into this status
        weight (optional): only cylinders of this size
        limit (optional): max results (default 200)
    """
    try:
        movements = cylinder_service.list_movements(
            identifier=request.args.get("product_id") or None,
            to_status=request.args.get("status") or None,
            weight_kg=request.args.get("weight") or None,
            limit=request.args.get("limit", type=int, default=200),
        )
        return jsonify({
            "movements": [m.to_dict() for m in movements],
            "count": len(movements),
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list cylinder movements")
        return jsonify({"error": "Internal server error"}), 500
