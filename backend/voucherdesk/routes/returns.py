# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/voucherdesk/routes/returns.py
"""
Return Record API Routes

/api/returns/purchase and /api/returns/sales. A return is editable while
Submitted; DELETE voids it (Submitted -> Voided, once).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")

KINDS = tuple(return_service.RETURN_TYPES)


def _unknown_kind():
    return jsonify({"error": "Unknown return type"}), 404


@returns_bp.get("/<kind>")
@require_auth
def list_returns_route(kind: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        result = return_service.list_returns(
            kind,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            status=request.args.get("status"),
        )
        return jsonify(result)
    except DomainError as e:
        return error_response(e)


@returns_bp.post("/<kind>")
@require_auth
def create_return_route(kind: str):
    """
    Request body:
    {
        "date": "2024-06-03",
        "description": "Damaged bags returned to supplier",
        "number_of_entries": 2
    }
    """
    if kind not in KINDS:
        return _unknown_kind()
    try:
        record = return_service.create_return(kind, request.get_json(silent=True) or {}, user_id=g.current_user.id)
        current_app.logger.info("Return %s created by user %s", record.display_id, g.current_user.id)
        return jsonify({"return": record.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<kind>/<path:ref>")
@require_auth
def get_return_route(kind: str, ref: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        return jsonify({"return": return_service.get_return(kind, ref).to_dict()})
    except DomainError as e:
        return error_response(e)


@returns_bp.put("/<kind>/<path:ref>")
@require_auth
def update_return_route(kind: str, ref: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        record = return_service.update_return(kind, ref, request.get_json(silent=True) or {}, user_id=g.current_user.id)
        return jsonify({"return": record.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.delete("/<kind>/<path:ref>")
@require_auth
@require_role("admin", "manager")
def void_return_route(kind: str, ref: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        record = return_service.void_return(kind, ref, user_id=g.current_user.id)
        current_app.logger.info("Return %s voided by user %s", record.display_id, g.current_user.id)
        return jsonify({"return": record.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void return")
        return jsonify({"error": "Internal server error"}), 500
