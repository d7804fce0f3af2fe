# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/voucherdesk/routes/inventory.py
"""
Inventory API Routes

- Item CRUD (delete is a soft deactivate)
- Bulk creation with per-item error reporting
- Stock adjustment (add / subtract / set) through the stock ledger
- Low-stock listing and fleet statistics
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response
from ..services import reporting_service, stock_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


# =============================================================================
# QUERIES
# =============================================================================

@inventory_bp.get("")
@require_auth
def list_items_route():
    try:
        result = stock_service.list_items(
            category_id=request.args.get("category_id", type=int),
            status=request.args.get("status"),
            search=request.args.get("search"),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify(result)
    except DomainError as e:
        return error_response(e)


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        items = stock_service.low_stock_items()
        return jsonify({"items": [item.to_dict() for item in items], "count": len(items)})
    except Exception:
        current_app.logger.exception("Failed to list low-stock items")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stats")
@require_auth
def stats_route():
    try:
        return jsonify({"stats": reporting_service.inventory_stats().to_dict()})
    except Exception:
        current_app.logger.exception("Failed to compute inventory stats")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        item = stock_service.get_item(item_id)
        data = item.to_dict()
        data["profit_margin"] = float(stock_service.profit_margin(item.rate, item.cost_price))
        return jsonify({"item": data})
    except DomainError as e:
        return error_response(e)


# =============================================================================
# WRITES
# =============================================================================

@inventory_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_item_route():
    """
    Request body:
    {
        "item_code": "RICE-5KG",
        "item_name": "Rice 5kg",
        "category_id": 1,          (optional)
        "unit": "bag",
        "rate": 12.50,
        "cost_price": 10.00,       (optional, defaults to rate)
        "quantity": 40,            (optional, default 0)
        "min_stock_level": 5,      (optional)
        "max_stock_level": 200     (optional)
    }
    """
    try:
        item = stock_service.create_item(request.get_json(silent=True) or {}, user_id=g.current_user.id)
        current_app.logger.info("Item %s (%s) created by user %s", item.id, item.item_code, g.current_user.id)
        return jsonify({"item": item.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/bulk")
@require_auth
@require_role("admin", "manager")
def create_items_bulk_route():
    try:
        data = request.get_json(silent=True) or {}
        result = stock_service.create_items_bulk(data.get("items"), user_id=g.current_user.id)
        current_app.logger.info(
            "Bulk item creation by user %s: %s created, %s failed",
            g.current_user.id, result["summary"]["successfully_created"], result["summary"]["failed"],
        )
        return jsonify({
            "created": [item.to_dict() for item in result["created"]],
            "errors": result["errors"],
            "summary": result["summary"],
        }), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create items in bulk")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/<int:item_id>")
@require_auth
@require_role("admin", "manager")
def update_item_route(item_id: int):
    try:
        item = stock_service.update_item(item_id, request.get_json(silent=True) or {}, user_id=g.current_user.id)
        return jsonify({"item": item.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:item_id>")
@require_auth
@require_role("admin", "manager")
def deactivate_item_route(item_id: int):
    try:
        item = stock_service.deactivate_item(item_id, user_id=g.current_user.id)
        current_app.logger.info("Item %s deactivated by user %s", item.id, g.current_user.id)
        return jsonify({"item": item.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/<int:item_id>/stock")
@require_auth
def adjust_stock_route(item_id: int):
    """
    Request body:
    {
        "operation": "add" | "subtract" | "set",
        "quantity": 5,
        "reason": "Weekly delivery"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if "quantity" not in data or not data.get("operation"):
            return jsonify({"error": "operation and quantity required"}), 400

        adjustment = stock_service.adjust_stock(
            item_id,
            data["operation"],
            data["quantity"],
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        current_app.logger.info(
            "Stock %s on item %s: %s -> %s by user %s (%s)",
            adjustment.operation, adjustment.item_id, adjustment.old_quantity,
            adjustment.new_quantity, g.current_user.id, adjustment.reason or "no reason given",
        )
        return jsonify({"adjustment": adjustment.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
