# Overview: Flask API routes for purchase and sales vouchers; parses input and returns JSON responses.

# backend/voucherdesk/routes/vouchers.py
"""
Transaction Voucher API Routes

/api/vouchers/purchase and /api/vouchers/sales share one set of handlers;
the <kind> segment selects the voucher type. References accept either the
display id ("PV 003", URL-encoded) or the internal id.

DELETE voids (soft delete). Voided vouchers stay listed with status Voided.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response
from ..services import transaction_service


vouchers_bp = Blueprint("vouchers", __name__, url_prefix="/api/vouchers")

KINDS = tuple(transaction_service.VOUCHER_TYPES)


def _unknown_kind():
    return jsonify({"error": "Unknown voucher type"}), 404


@vouchers_bp.get("/<kind>")
@require_auth
def list_vouchers_route(kind: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        result = transaction_service.list_transactions(
            kind,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            status=request.args.get("status"),
        )
        return jsonify(result)
    except DomainError as e:
        return error_response(e)


@vouchers_bp.post("/<kind>")
@require_auth
def create_voucher_route(kind: str):
    """
    Request body (purchase; sales uses "party" instead of "supplier"):
    {
        "date": "2024-06-01",
        "supplier": "Acme Wholesale",
        "items": [
            {"item_name": "Rice 5kg", "quantity": 10, "rate": 12.5, "unit": "bag", "category": "Grocery"}
        ]
    }

    Sales lines may carry their own "total", which then prices the line.
    """
    if kind not in KINDS:
        return _unknown_kind()
    try:
        voucher = transaction_service.create_transaction(
            kind, request.get_json(silent=True) or {}, user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Voucher %s created by user %s (%s entries, total %s)",
            voucher.display_id, g.current_user.id, voucher.entries, voucher.total,
        )
        return jsonify({"voucher": voucher.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create voucher")
        return jsonify({"error": "Internal server error"}), 500


@vouchers_bp.get("/<kind>/<path:ref>")
@require_auth
def get_voucher_route(kind: str, ref: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        return jsonify({"voucher": transaction_service.get_transaction(kind, ref).to_dict()})
    except DomainError as e:
        return error_response(e)


@vouchers_bp.put("/<kind>/<path:ref>")
@require_auth
def update_voucher_route(kind: str, ref: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        voucher = transaction_service.update_transaction(
            kind, ref, request.get_json(silent=True) or {}, user_id=g.current_user.id,
        )
        current_app.logger.info("Voucher %s updated by user %s", voucher.display_id, g.current_user.id)
        return jsonify({"voucher": voucher.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update voucher")
        return jsonify({"error": "Internal server error"}), 500


@vouchers_bp.delete("/<kind>/<path:ref>")
@require_auth
@require_role("admin", "manager")
def void_voucher_route(kind: str, ref: str):
    if kind not in KINDS:
        return _unknown_kind()
    try:
        voucher = transaction_service.void_transaction(kind, ref, user_id=g.current_user.id)
        current_app.logger.info("Voucher %s voided by user %s", voucher.display_id, g.current_user.id)
        return jsonify({"voucher": voucher.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void voucher")
        return jsonify({"error": "Internal server error"}), 500
