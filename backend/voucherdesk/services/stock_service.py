# Overview: Service-layer operations for the stock ledger; item CRUD, quantity adjustment and stock status.

"""
Stock Ledger

QUANTITY RULES (one rule for every write path):
- add:      new = old + amount
- subtract: new = max(0, old - amount)   (silent clamp at zero)
- set:      new = amount
- amount must be a non-negative integer; a negative "set" is rejected
  rather than stored, so quantity >= 0 always holds.

Direct item edits that carry a quantity are routed through the same rule as
a "set", so the edit path and the adjustment path cannot drift apart.

STATUS (derived, never stored), first match wins:
    quantity == 0              -> OUT_OF_STOCK
    quantity <= min_stock      -> LOW_STOCK
    quantity >= max_stock      -> OVERSTOCK   (only when max is configured)
    otherwise                  -> IN_STOCK
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, InventoryItem
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_item,
    validate_payload,
)
from .concurrency import commit_or_conflict, lock_for_update, run_with_retry


class StockStatus(str, Enum):
    OUT_OF_STOCK = "Out of Stock"
    LOW_STOCK = "Low Stock"
    OVERSTOCK = "Overstock"
    IN_STOCK = "In Stock"


STOCK_OPERATIONS = ("add", "subtract", "set")

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "item_code", "item_name", "category_id", "unit", "rate", "cost_price",
        "quantity", "min_stock_level", "max_stock_level", "is_active",
    },
    required_on_create={"item_code", "item_name", "unit", "rate"},
)


@dataclass(frozen=True)
class StockAdjustment:
    item_id: int
    item_code: str
    operation: str
    old_quantity: int
    new_quantity: int
    status: StockStatus
    total: Decimal
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.item_id,
            "item_code": self.item_code,
            "operation": self.operation,
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
            "status": self.status.value,
            "total": float(self.total),
            "reason": self.reason,
        }


# =============================================================================
# PURE RULES
# =============================================================================

def apply_quantity(old: int, operation: str, amount) -> int:
    """Return the new on-hand quantity. Raises ValidationError on bad input."""
    if operation not in STOCK_OPERATIONS:
        raise ValidationError(f"operation must be one of: {', '.join(STOCK_OPERATIONS)}")

    amount = coerce_int(amount, "quantity")
    if amount < 0:
        raise ValidationError("quantity must be >= 0")

    if operation == "add":
        return old + amount
    if operation == "subtract":
        return max(0, old - amount)
    return amount


def classify_stock(quantity: int, min_stock_level: int | None, max_stock_level: int | None = None) -> StockStatus:
    if quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= (min_stock_level or 0):
        return StockStatus.LOW_STOCK
    if max_stock_level is not None and quantity >= max_stock_level:
        return StockStatus.OVERSTOCK
    return StockStatus.IN_STOCK


def profit_margin(price, cost) -> Decimal:
    """
    Margin on sale price, in percent, rounded to 2 decimals.

    0 when cost is 0 (nothing to compare against) and when price is 0
    (margin on a zero price is undefined).
    """
    price = Decimal(str(price))
    cost = Decimal(str(cost))
    if cost == 0 or price == 0:
        return Decimal("0.00")
    margin = (price - cost) / price * 100
    return margin.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# =============================================================================
# ITEM QUERIES
# =============================================================================

def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def list_items(
    *,
    category_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
    page=None,
    limit=None,
) -> dict:
    """
    Filtered, paginated item listing (newest first).

    ``status`` filters on the derived stock status. It is translated into
    quantity/threshold conditions so paging stays in SQL.
    """
    q = db.session.query(InventoryItem)
    if not include_inactive:
        q = q.filter(InventoryItem.is_active.is_(True))
    if category_id:
        q = q.filter(InventoryItem.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(InventoryItem.item_name.ilike(pattern), InventoryItem.item_code.ilike(pattern)))
    if status:
        q = _filter_by_status(q, status)

    q = q.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    rows, meta = paginate(q, page, limit)
    return {"items": [item.to_dict() for item in rows], "pagination": meta}


def _filter_by_status(q, status: str):
    try:
        wanted = StockStatus(status)
    except ValueError:
        try:
            wanted = StockStatus[status.upper()]
        except KeyError:
            raise ValidationError(f"Unknown stock status: {status}")

    qty = InventoryItem.quantity
    low = InventoryItem.min_stock_level
    high = InventoryItem.max_stock_level
    if wanted is StockStatus.OUT_OF_STOCK:
        return q.filter(qty == 0)
    if wanted is StockStatus.LOW_STOCK:
        return q.filter(qty > 0, qty <= low)
    if wanted is StockStatus.OVERSTOCK:
        return q.filter(qty > 0, qty > low, high.isnot(None), qty >= high)
    return q.filter(qty > 0, qty > low, or_(high.is_(None), qty < high))


def low_stock_items() -> list[InventoryItem]:
    """Active items at or below their minimum level (zero included), lowest first."""
    return (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.is_active.is_(True),
            InventoryItem.quantity <= InventoryItem.min_stock_level,
        )
        .order_by(InventoryItem.quantity.asc(), InventoryItem.id.asc())
        .all()
    )


# =============================================================================
# ITEM WRITES
# =============================================================================

def _ensure_code_free(item_code: str, exclude_id: int | None = None) -> None:
    q = db.session.query(InventoryItem.id).filter(InventoryItem.item_code == item_code)
    if exclude_id is not None:
        q = q.filter(InventoryItem.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Item code already exists")


def _ensure_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise ValidationError("Invalid category ID")


def _build_item(payload: dict, user_id: int | None) -> InventoryItem:
    # Omitted/blank optional fields fall back to defaults below
    payload = {
        k: v for k, v in payload.items()
        if not (k in ("cost_price", "quantity", "min_stock_level") and v in (None, ""))
    }
    patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_POLICY, partial=False)
    patch.setdefault("min_stock_level", current_app.config.get("DEFAULT_MIN_STOCK_LEVEL", 5))
    enforce_rules_item(patch)

    _ensure_code_free(patch["item_code"])
    _ensure_category(patch.get("category_id"))

    quantity = apply_quantity(0, "set", patch.pop("quantity", 0) or 0)
    if patch.get("cost_price") is None:
        patch["cost_price"] = patch["rate"]

    now = utcnow()
    return InventoryItem(
        **patch,
        quantity=quantity,
        created_by=user_id,
        updated_by=user_id,
        created_at=now,
        updated_at=now,
    )


def create_item(payload: dict, user_id: int | None = None) -> InventoryItem:
    """
    Create an item (first stocking).

    Raises:
        ValidationError: missing/malformed fields or unknown category
        ConflictError: item_code already used
    """
    def _op():
        item = _build_item(payload, user_id)
        db.session.add(item)
        commit_or_conflict("Item code already exists")
        return item

    return run_with_retry(_op)


def create_items_bulk(items: list, user_id: int | None = None) -> dict:
    """
    Create several items; each is validated independently.

    Items that fail are reported by position and skipped. The rest are
    committed together.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Items array is required and cannot be empty")

    def _op():
        created: list[InventoryItem] = []
        errors: list[str] = []
        seen_codes: set[str] = set()
        for index, payload in enumerate(items, start=1):
            try:
                if not isinstance(payload, dict):
                    raise ValidationError("Invalid item payload")
                code = str(payload.get("item_code", "")).strip()
                if code in seen_codes:
                    raise ConflictError(f"Item code '{code}' already exists")
                item = _build_item(payload, user_id)
            except (ValidationError, ConflictError) as e:
                errors.append(f"Item {index}: {e.message}")
                continue
            seen_codes.add(item.item_code)
            db.session.add(item)
            created.append(item)

        commit_or_conflict("Item code already exists")
        return {
            "created": created,
            "errors": errors,
            "summary": {
                "total_requested": len(items),
                "successfully_created": len(created),
                "failed": len(errors),
            },
        }

    return run_with_retry(_op)


def update_item(item_id: int, payload: dict, user_id: int | None = None) -> InventoryItem:
    """
    Patch an item.

    A quantity in the payload is applied as a "set" through apply_quantity.
    """
    patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_POLICY, partial=True)

    def _op():
        item = get_item(item_id)

        merged = {
            "min_stock_level": item.min_stock_level,
            "max_stock_level": item.max_stock_level,
            **patch,
        }
        enforce_rules_item(merged)

        if "item_code" in patch and patch["item_code"] != item.item_code:
            _ensure_code_free(patch["item_code"], exclude_id=item.id)
        if "category_id" in patch and patch["category_id"] != item.category_id:
            _ensure_category(patch.get("category_id"))

        for key, value in patch.items():
            if key == "quantity":
                value = apply_quantity(item.quantity, "set", value)
            if key in ("rate", "cost_price") and value is None:
                raise ValidationError(f"{key} cannot be null")
            setattr(item, key, value)

        item.updated_by = user_id
        item.updated_at = utcnow()
        commit_or_conflict("Item code already exists")
        return item

    return run_with_retry(_op)


def deactivate_item(item_id: int, user_id: int | None = None) -> InventoryItem:
    """Soft delete. Historical vouchers keep referring to the item by name."""
    def _op():
        item = get_item(item_id)
        item.is_active = False
        item.updated_by = user_id
        item.updated_at = utcnow()
        db.session.commit()
        return item

    return run_with_retry(_op)


def adjust_stock(
    item_id: int,
    operation: str,
    amount,
    *,
    user_id: int | None = None,
    reason: str | None = None,
) -> StockAdjustment:
    """
    Adjust on-hand quantity.

    Input is validated before the item is touched; an unknown item raises
    NotFoundError and nothing is written. The write only lands if quantity
    still holds the value that was read; otherwise the adjustment is replayed
    against the fresh row, so concurrent adjustments never overwrite each
    other.
    """
    if operation not in STOCK_OPERATIONS:
        raise ValidationError(f"operation must be one of: {', '.join(STOCK_OPERATIONS)}")

    def _op():
        item = lock_for_update(
            db.session.query(InventoryItem).populate_existing().filter(InventoryItem.id == item_id)
        ).first()
        if item is None:
            raise NotFoundError("Inventory item not found")
        old_quantity = item.quantity
        new_quantity = apply_quantity(old_quantity, operation, amount)

        result = db.session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item_id, InventoryItem.quantity == old_quantity)
            .values(quantity=new_quantity, updated_by=user_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleDataError(f"Inventory item {item_id} changed during adjustment")
        db.session.commit()

        return StockAdjustment(
            item_id=item.id,
            item_code=item.item_code,
            operation=operation,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            status=classify_stock(new_quantity, item.min_stock_level, item.max_stock_level),
            total=item.total,
            reason=reason,
        )

    return run_with_retry(_op)
