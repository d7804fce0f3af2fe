# Overview: Fleet-wide inventory statistics computed from the current item snapshot.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import InventoryItem
from ..money import ZERO, money_to_json, quantize_money


UNCATEGORIZED = "Uncategorized"


@dataclass
class InventoryStats:
    total_items: int = 0
    total_value: Decimal = ZERO
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    category_breakdown: dict = field(default_factory=dict)
    average_item_value: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "total_items": self.total_items,
            "total_value": money_to_json(self.total_value),
            "low_stock_count": self.low_stock_count,
            "out_of_stock_count": self.out_of_stock_count,
            "category_breakdown": {
                name: {"count": entry["count"], "value": money_to_json(entry["value"])}
                for name, entry in self.category_breakdown.items()
            },
            "average_item_value": money_to_json(self.average_item_value),
        }


def _stock_value(item) -> Decimal:
    # Cost basis, not the sale-rate "total" shown on the item itself
    return Decimal(item.quantity or 0) * Decimal(str(item.cost_price or 0))


def summarize_items(items: Iterable) -> InventoryStats:
    """
    Aggregate a snapshot of items. Inactive items are ignored.

    low_stock_count uses quantity <= min_stock_level, so out-of-stock items
    are counted in both low_stock_count and out_of_stock_count.
    """
    stats = InventoryStats()
    total = ZERO

    for item in items:
        if not item.is_active:
            continue

        value = _stock_value(item)
        stats.total_items += 1
        total += value

        if item.quantity <= (item.min_stock_level or 0):
            stats.low_stock_count += 1
        if item.quantity == 0:
            stats.out_of_stock_count += 1

        name = item.category.name if item.category is not None else UNCATEGORIZED
        entry = stats.category_breakdown.setdefault(name, {"count": 0, "value": ZERO})
        entry["count"] += 1
        entry["value"] += value

    stats.total_value = quantize_money(total)
    for entry in stats.category_breakdown.values():
        entry["value"] = quantize_money(entry["value"])
    if stats.total_items:
        stats.average_item_value = quantize_money(total / stats.total_items)
    return stats


def inventory_stats() -> InventoryStats:
    items = (
        db.session.query(InventoryItem)
        .options(joinedload(InventoryItem.category))
        .filter(InventoryItem.is_active.is_(True))
        .all()
    )
    return summarize_items(items)
