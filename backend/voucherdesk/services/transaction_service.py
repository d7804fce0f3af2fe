# Overview: Purchase and sales voucher lifecycle; creation, lookup, edit and void.

"""
Transaction Document Engine (vouchers)

LIFECYCLE:
    Active -> Voided   (one way; voided vouchers stay stored with their id)

TOTALS:
- compute_total is the single pricing rule for both flows. Purchase lines
  are priced quantity * rate. Sales lines carry the caller-supplied line
  total when present, falling back to quantity * rate.
- The total is computed once at creation and frozen. Replacing the lines
  through update_transaction recomputes it with the same rule.

CREATION ORDER:
1. Validate everything (nothing written on a bad payload)
2. Allocate the display id in the same unit of work
3. Insert voucher + lines, commit (a failed insert returns the number)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import selectinload

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import TransactionLine, TransactionVoucher
from ..money import ZERO, quantize_money
from ..pagination import paginate
from ..time_utils import parse_business_date, utcnow
from ..validation import MAX_AMOUNT, coerce_decimal, coerce_int
from .concurrency import commit_or_conflict, run_with_retry
from .sequence_service import allocate_display_id


VOUCHER_TYPES = {
    # voucher_type -> (document_type for the allocator, counterparty field)
    "purchase": ("purchase_voucher", "supplier"),
    "sales": ("sales_voucher", "party"),
}

STATUS_ACTIVE = "Active"
STATUS_VOIDED = "Voided"


def _resolve(voucher_type: str) -> tuple[str, str]:
    try:
        return VOUCHER_TYPES[voucher_type]
    except KeyError:
        raise ValidationError(f"Unknown voucher type: {voucher_type}")


# =============================================================================
# LINES AND TOTALS
# =============================================================================

def normalize_line(raw, position: int, source: str) -> dict:
    """Validate one incoming line. Raises ValidationError naming the line."""
    label = f"Item {position}"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label}: invalid line")

    item_name = str(raw.get("item_name") or raw.get("itemName") or "").strip()
    if not item_name:
        raise ValidationError(f"{label}: item_name is required")
    if len(item_name) > 255:
        raise ValidationError(f"{label}: item_name exceeds max length 255")

    try:
        quantity = coerce_int(raw.get("quantity"), "quantity")
        rate = coerce_decimal(raw.get("rate"), "rate")
    except ValidationError as e:
        raise ValidationError(f"{label}: {e.message}")
    if quantity <= 0:
        raise ValidationError(f"{label}: quantity must be a positive integer")
    if rate < 0 or rate > MAX_AMOUNT:
        raise ValidationError(f"{label}: rate must be between 0 and {MAX_AMOUNT}")

    line = {
        "position": position,
        "item_name": item_name,
        "quantity": quantity,
        "rate": quantize_money(rate),
        "unit": (str(raw.get("unit") or "").strip() or None),
        "category": (str(raw.get("category") or "").strip() or None),
        "total": None,
    }

    if source == "sales" and raw.get("total") not in (None, ""):
        try:
            supplied = coerce_decimal(raw.get("total"), "total")
        except ValidationError as e:
            raise ValidationError(f"{label}: {e.message}")
        if supplied < 0:
            raise ValidationError(f"{label}: total must be >= 0")
        line["total"] = quantize_money(supplied)

    return line


def line_total(line: dict, source: str) -> Decimal:
    if source == "sales" and line.get("total") is not None:
        return quantize_money(line["total"])
    return quantize_money(Decimal(line["quantity"]) * Decimal(str(line["rate"])))


def compute_total(lines: list[dict], source: str) -> Decimal:
    """
    Sum of line totals.

    source="purchase": quantity * rate per line
    source="sales": the line's own total when given, else quantity * rate
    """
    if source not in VOUCHER_TYPES:
        raise ValidationError(f"Unknown voucher type: {source}")
    return quantize_money(sum((line_total(line, source) for line in lines), ZERO))


def _normalize_lines(items, source: str) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    return [normalize_line(raw, index, source) for index, raw in enumerate(items, start=1)]


def _build_lines(lines: list[dict], source: str) -> list[TransactionLine]:
    return [
        TransactionLine(
            position=line["position"],
            item_name=line["item_name"],
            quantity=line["quantity"],
            rate=line["rate"],
            unit=line["unit"],
            category=line["category"],
            line_total=line_total(line, source),
        )
        for line in lines
    ]


def _parse_date(value) -> date:
    try:
        parsed = parse_business_date(value)
    except ValueError:
        raise ValidationError("date must be a date (YYYY-MM-DD or DD/MM/YYYY)")
    if parsed is None:
        raise ValidationError("date is required")
    return parsed


def _parse_counterparty(data: dict, field: str) -> str:
    value = str(data.get(field) or "").strip()
    if not value:
        raise ValidationError(f"{field} is required")
    if len(value) > 255:
        raise ValidationError(f"{field} exceeds max length 255")
    return value


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(voucher_type: str, ref) -> TransactionVoucher:
    """
    Look a voucher up by display id ("PV 003") first, then by internal id.
    """
    _resolve(voucher_type)
    base = db.session.query(TransactionVoucher).filter(TransactionVoucher.voucher_type == voucher_type)

    voucher = base.filter(TransactionVoucher.display_id == str(ref).strip()).first()
    if voucher is None and str(ref).strip().isdigit():
        voucher = base.filter(TransactionVoucher.id == int(str(ref).strip())).first()
    if voucher is None:
        raise NotFoundError("Voucher not found")
    return voucher


def list_transactions(voucher_type: str, page=None, limit=None, status: str | None = None) -> dict:
    _resolve(voucher_type)
    q = (
        db.session.query(TransactionVoucher)
        .options(selectinload(TransactionVoucher.lines))
        .filter(TransactionVoucher.voucher_type == voucher_type)
    )
    if status:
        q = q.filter(TransactionVoucher.status == status)
    q = q.order_by(TransactionVoucher.created_at.desc(), TransactionVoucher.id.desc())

    rows, meta = paginate(q, page, limit)
    return {"vouchers": [v.to_dict() for v in rows], "pagination": meta}


# =============================================================================
# WRITES
# =============================================================================

def create_transaction(voucher_type: str, data: dict, user_id: int | None = None) -> TransactionVoucher:
    """
    Create a purchase or sales voucher.

    Raises:
        ValidationError: bad payload (nothing written, no id consumed)
        DependencyUnavailableError: store unreachable after retries
    """
    document_type, counterparty_field = _resolve(voucher_type)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    doc_date = _parse_date(data.get("date"))
    counterparty = _parse_counterparty(data, counterparty_field)
    lines = _normalize_lines(data.get("items"), voucher_type)
    total = compute_total(lines, voucher_type)

    def _op():
        now = utcnow()
        voucher = TransactionVoucher(
            voucher_type=voucher_type,
            display_id=allocate_display_id(document_type),
            date=doc_date,
            counterparty=counterparty,
            total=total,
            entries=len(lines),
            status=STATUS_ACTIVE,
            created_by=user_id,
            updated_by=user_id,
            created_at=now,
            updated_at=now,
        )
        voucher.lines = _build_lines(lines, voucher_type)
        db.session.add(voucher)
        commit_or_conflict("Voucher number already taken, please retry")
        return voucher

    return run_with_retry(_op)


def update_transaction(voucher_type: str, ref, data: dict, user_id: int | None = None) -> TransactionVoucher:
    """
    Replace date, counterparty and/or items on an Active voucher.

    Replacing items recomputes total and entries. The display id, type and
    status are not editable here.
    """
    _, counterparty_field = _resolve(voucher_type)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    changes: dict = {}
    if "date" in data:
        changes["date"] = _parse_date(data["date"])
    if counterparty_field in data:
        changes["counterparty"] = _parse_counterparty(data, counterparty_field)
    lines = _normalize_lines(data["items"], voucher_type) if "items" in data else None

    def _op():
        voucher = get_transaction(voucher_type, ref)
        if voucher.status != STATUS_ACTIVE:
            raise InvalidStateError(f"Cannot edit a {voucher.status.lower()} voucher")

        for key, value in changes.items():
            setattr(voucher, key, value)
        if lines is not None:
            voucher.lines = _build_lines(lines, voucher_type)
            voucher.total = compute_total(lines, voucher_type)
            voucher.entries = len(lines)

        voucher.updated_by = user_id
        voucher.updated_at = utcnow()
        db.session.commit()
        return voucher

    return run_with_retry(_op)


def void_transaction(voucher_type: str, ref, user_id: int | None = None) -> TransactionVoucher:
    """
    Active -> Voided. Voiding twice raises InvalidStateError.

    The status flip is a conditional UPDATE on status = 'Active', so of two
    concurrent voids exactly one succeeds.
    """
    def _op():
        voucher = get_transaction(voucher_type, ref)
        if voucher.status == STATUS_VOIDED:
            raise InvalidStateError("Voucher is already voided")

        now = utcnow()
        result = db.session.execute(
            update(TransactionVoucher)
            .where(TransactionVoucher.id == voucher.id, TransactionVoucher.status == STATUS_ACTIVE)
            .values(status=STATUS_VOIDED, voided_at=now, updated_by=user_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise InvalidStateError("Voucher is already voided")
        db.session.commit()
        return voucher

    return run_with_retry(_op)
