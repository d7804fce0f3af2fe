from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_response
from ..services import category_service

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _active_filter(raw: str | None) -> bool | None:
    if raw is None or raw == "":
        return None
    return raw.lower() == "true"


@categories_bp.get("")
@require_auth
def list_categories_route():
    try:
        categories = category_service.list_categories(active=_active_filter(request.args.get("active")))
        return jsonify({"categories": [c.to_dict() for c in categories]})
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        return jsonify({"category": category_service.get_category(category_id).to_dict()})
    except DomainError as e:
        return error_response(e)


@categories_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_category_route():
    try:
        category = category_service.create_category(request.get_json(silent=True) or {}, g.current_user.id)
        current_app.logger.info("Category %s created by user %s", category.id, g.current_user.id)
        return jsonify({"category": category.to_dict()}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.put("/<int:category_id>")
@require_auth
@require_role("admin", "manager")
def update_category_route(category_id: int):
    try:
        category = category_service.update_category(
            category_id, request.get_json(silent=True) or {}, user_id=g.current_user.id,
        )
        return jsonify({"category": category.to_dict()})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500
