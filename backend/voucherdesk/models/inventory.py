from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


class Category(db.Model):
    """
    Item category.

    Names are unique case-insensitively; uniqueness is checked in
    category_service (the column constraint only catches exact duplicates).
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "is_active": self.is_active,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryItem(db.Model):
    """
    Stocked item.

    QUANTITY: on-hand quantity is an integer that never goes below zero.
    Every write goes through stock_service.apply_quantity.

    DERIVED VALUES (never stored):
    - total = quantity * rate
    - status = stock_service.classify_stock(quantity, min, max)

    Items are soft-deactivated (is_active=False), never deleted, because
    historical vouchers reference them by name.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_active_category", "is_active", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    unit = db.Column(db.String(32), nullable=False)

    rate = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=5)
    max_stock_level = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} code={self.item_code!r} qty={self.quantity}>"

    @property
    def total(self):
        return (self.quantity or 0) * (self.rate or 0)

    @property
    def stock_status(self):
        from ..services.stock_service import classify_stock
        return classify_stock(self.quantity or 0, self.min_stock_level, self.max_stock_level)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "unit": self.unit,
            "rate": money_to_json(self.rate),
            "cost_price": money_to_json(self.cost_price),
            "quantity": self.quantity,
            "total": money_to_json(self.total),
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "status": self.stock_status.value,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
