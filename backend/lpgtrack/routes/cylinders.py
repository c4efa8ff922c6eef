# Overview: Flask API routes for cylinder issuance and lookups; parses input and returns JSON responses.

# backend/lpgtrack/routes/cylinders.py
"""
Cylinder API routes

- POST /api/cylinders            - Issue a cylinder from a QR payload
- GET  /api/cylinders            - List cylinders (status / weight filters, pagination)
- GET  /api/cylinders/check-qr   - Does a scanned code resolve to a cylinder?
- GET  /api/cylinders/summary    - Counts by status and size
- GET  /api/cylinders/<id>       - One cylinder, with recent movements

Status is read-only here. Status changes go through /api/movements.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import cylinder_service
from ..validation import ValidationError, ConflictError, NotFoundError, require_text


cylinders_bp = Blueprint("cylinders", __name__, url_prefix="/api/cylinders")


@cylinders_bp.post("")
def issue_cylinder_route():
    """
    Issue a new cylinder.

    Request body:
        {
            "qr_code": "Q.C PASSED   05285AWI1ES04",   // raw scan or typed code
            "weight_kg": 11,
            "unit_cost": "950.00",
            "supplier": "Petron Corporation"            // optional
        }

    Error responses:
        400: Missing/invalid fields
        409: A cylinder with this QR code already exists
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    missing = [k for k in ("qr_code", "weight_kg", "unit_cost") if payload.get(k) in (None, "")]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    try:
        cylinder = cylinder_service.issue_cylinder(
            require_text(payload, "qr_code"),
            weight_kg=payload["weight_kg"],
            unit_cost=payload["unit_cost"],
            supplier=payload.get("supplier"),
        )
        return jsonify({"cylinder": cylinder.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to issue cylinder")
        return jsonify({"error": "Internal server error"}), 500


@cylinders_bp.get("")
def list_cylinders_route():
    """
    List cylinders.

    Query parameters:
        status (optional): available | sold | maintenance | damaged | missing
        weight (optional): standard size in kg
        page, per_page (optional): pagination (per_page capped by config)
    """
    try:
        result = cylinder_service.list_cylinders(
            status=request.args.get("status") or None,
            weight_kg=request.args.get("weight") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            max_per_page=current_app.config["CYLINDER_PAGE_SIZE_MAX"],
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list cylinders")
        return jsonify({"error": "Internal server error"}), 500


@cylinders_bp.get("/check-qr")
def check_qr_route():
    """
    Existence check for a scanned code.

    Query parameters:
        qr (required): raw scan text

    Response:
        {"exists": bool, "cylinder": {...} | null, "qr_code": "...", "identifier": "LPG-..."}
    """
    raw = request.args.get("qr")
    if not raw:
        return jsonify({"error": "QR code is required"}), 400

    try:
        return jsonify(cylinder_service.check_qr(raw)), 200
    except Exception:
        current_app.logger.exception("Failed to check QR code")
        return jsonify({"error": "Internal server error"}), 500


@cylinders_bp.get("/summary")
def cylinder_summary_route():
    try:
        return jsonify({"summary": cylinder_service.cylinder_summary()}), 200
    except Exception:
        current_app.logger.exception("Failed to build cylinder summary")
        return jsonify({"error": "Internal server error"}), 500


@cylinders_bp.get("/<path:identifier>")
def get_cylinder_route(identifier: str):
    """
    Fetch one cylinder by identifier or QR code, with its latest movements.

    Query parameters:
        movements (optional): how many recent movements to include (default 10, 0 for none)
    """
    try:
        cylinder = cylinder_service.get_cylinder(identifier)
        limit = request.args.get("movements", type=int, default=10)

        body = {"cylinder": cylinder.to_dict()}
        if limit and limit > 0:
            movements = cylinder_service.list_movements(identifier=cylinder.identifier, limit=limit)
            body["movements"] = [m.to_dict() for m in movements]
        return jsonify(body), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to fetch cylinder")
        return jsonify({"error": "Internal server error"}), 500
