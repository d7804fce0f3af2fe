# Overview: Flask API routes for discount vouchers; parses input and returns JSON responses.

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response
from ..services import discount_service

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discount-vouchers")


def _bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() == "true"


@discounts_bp.get("")
@require_auth
def list_discount_vouchers_route():
    try:
        result = discount_service.list_discount_vouchers(
            search=request.args.get("search"),
            discount_type=request.args.get("type") or request.args.get("discount_type"),
            is_active=_bool_arg("is_active"),
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc"),
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify(result)
    except DomainError as e:
        return error_response(e)


@discounts_bp.get("/<int:voucher_id>")
@require_auth
def get_discount_voucher_route(voucher_id: int):
    try:
        return jsonify({"voucher": discount_service.get_discount_voucher(voucher_id).to_dict()})
    except DomainError as e:
        return error_response(e)


@discounts_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_discount_voucher_route():
    try:
        voucher = discount_service.create_discount_voucher(
            request.get_json(silent=True) or {}, user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Discount voucher %s created by user %s (%s %s)",
            voucher.code, g.current_user.id, voucher.discount_type, voucher.value,
        )
        return jsonify({"voucher": voucher.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create discount voucher")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.put("/<int:voucher_id>")
@require_auth
@require_role("admin", "manager")
def update_discount_voucher_route(voucher_id: int):
    try:
        voucher = discount_service.update_discount_voucher(
            voucher_id, request.get_json(silent=True) or {}, user_id=g.current_user.id,
        )
        return jsonify({"voucher": voucher.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update discount voucher")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.delete("/<int:voucher_id>")
@require_auth
@require_role("admin", "manager")
def deactivate_discount_voucher_route(voucher_id: int):
    try:
        voucher = discount_service.deactivate_discount_voucher(voucher_id, user_id=g.current_user.id)
        current_app.logger.info("Discount voucher %s deactivated by user %s", voucher.code, g.current_user.id)
        return jsonify({"voucher": voucher.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate discount voucher")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.get("/validate/<code>")
@require_auth
def validate_discount_voucher_route(code: str):
    """
    Query: ?orderAmount=250 (or order_amount)

    Returns:
        200: voucher valid, discount breakdown included
        400: voucher rejected (inactive, expired, limit, minimum)
        404: unknown code
    """
    try:
        order_amount = request.args.get("orderAmount", request.args.get("order_amount", 0))
        check = discount_service.validate_voucher(code, order_amount)
        if not check.is_valid:
            status = 404 if check.status is discount_service.VoucherStatus.NOT_FOUND else 400
            return jsonify({**check.to_dict(), "error": check.message}), status
        return jsonify(check.to_dict())
    except DomainError as e:
        return error_response(e)


@discounts_bp.post("/apply/<code>")
@require_auth
def apply_discount_voucher_route(code: str):
    """
    With "order_amount" in the body the voucher is validated and redeemed in
    one conditional update. Without it the use is counted unconditionally
    (up to the usage limit).
    """
    try:
        data = request.get_json(silent=True) or {}
        order_amount = data.get("order_amount", data.get("orderAmount"))

        if order_amount is not None:
            check = discount_service.redeem_if_valid(code, order_amount, user_id=g.current_user.id)
            voucher = check.voucher
            body = check.to_dict()
        else:
            voucher = discount_service.redeem_voucher(code, user_id=g.current_user.id)
            body = {"code": voucher.code}

        body["used_count"] = voucher.used_count
        current_app.logger.info(
            "Discount voucher %s redeemed by user %s (%s/%s)",
            voucher.code, g.current_user.id, voucher.used_count, voucher.usage_limit,
        )
        return jsonify(body)
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply discount voucher")
        return jsonify({"error": "Internal server error"}), 500
