# Overview: Page/limit validation and pagination metadata for list endpoints.

from __future__ import annotations

from flask import current_app


def _as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def validate_pagination(page=None, limit=None) -> tuple[int, int, int]:
    """
    Normalize paging input.

    Returns (page, limit, skip). Page is at least 1; limit falls back to
    PAGINATION_DEFAULT_LIMIT and is bounded by PAGINATION_MAX_LIMIT.
    Garbage input falls back to the defaults instead of erroring.
    """
    default_limit = current_app.config.get("PAGINATION_DEFAULT_LIMIT", 10)
    max_limit = current_app.config.get("PAGINATION_MAX_LIMIT", 100)

    page = max(1, _as_int(page, 1))
    limit = _as_int(limit, default_limit)
    if limit < 1:
        limit = default_limit
    limit = min(max_limit, limit)

    return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> dict:
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def paginate(query, page=None, limit=None) -> tuple[list, dict]:
    """Apply skip/limit to a SQLAlchemy query and return (rows, meta)."""
    page, limit, skip = validate_pagination(page, limit)
    total = query.order_by(None).count()
    rows = query.offset(skip).limit(limit).all()
    return rows, pagination_meta(page, limit, total)
