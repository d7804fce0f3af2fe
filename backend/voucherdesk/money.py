# Overview: Decimal helpers for money amounts (storage precision and JSON output).

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize_money(value) -> Decimal:
    """Round half-up to cents."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_json(value) -> float | None:
    """Serialize a stored amount for JSON clients (display only)."""
    if value is None:
        return None
    return float(quantize_money(value))
