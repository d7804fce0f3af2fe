from __future__ import annotations

from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import commit_or_conflict, run_with_retry


UPDATE_POLICY = ModelValidationPolicy(writable_fields={"name", "description", "is_active"})


def _clean_name(name) -> str:
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120")
    return name


def _ensure_name_free(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Category already exists")


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def list_categories(active: bool | None = None) -> list[Category]:
    q = db.session.query(Category)
    if active is not None:
        q = q.filter(Category.is_active.is_(active))
    return q.order_by(Category.name.asc()).all()


def create_category(data: dict, user_id: int | None = None) -> Category:
    name = _clean_name(data.get("name"))

    def _op():
        _ensure_name_free(name)
        now = utcnow()
        category = Category(
            name=name,
            description=(data.get("description") or "").strip() or None,
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(category)
        commit_or_conflict("Category already exists")
        return category

    return run_with_retry(_op)


def update_category(category_id: int, data: dict, user_id: int | None = None) -> Category:
    patch = validate_payload(model=Category, payload=data, policy=UPDATE_POLICY, partial=True)
    if "name" in patch:
        patch["name"] = _clean_name(patch["name"])
    if "description" in patch:
        patch["description"] = (patch["description"] or "").strip() or None

    def _op():
        category = get_category(category_id)
        if "name" in patch:
            _ensure_name_free(patch["name"], exclude_id=category.id)
        for key, value in patch.items():
            setattr(category, key, value)
        category.updated_by = user_id
        category.updated_at = utcnow()
        commit_or_conflict("Category already exists")
        return category

    return run_with_retry(_op)
