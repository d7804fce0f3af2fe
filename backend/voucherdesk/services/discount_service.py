# Overview: Discount voucher validation, redemption and CRUD.

"""
Discount Voucher Engine

VALIDATION (validate_voucher) evaluates the guards in order, first failure
wins, and is re-evaluated fresh on every call:

    1. voucher exists                      else NOT_FOUND
    2. is_active                           else INACTIVE
    3. now >= valid_from                   else NOT_YET_VALID
    4. now <= valid_until                  else EXPIRED
    5. used_count < usage_limit            else LIMIT_EXCEEDED
    6. order_amount >= min_order_amount    else BELOW_MINIMUM
    7. VALID, discount computed

DISCOUNT:
- percentage: order_amount * value / 100, clamped to max_discount_amount
  when a cap is set (a cap of 0 counts as "no cap")
- fixed: value, never clamped; may exceed the order amount
- final_amount = max(0, order_amount - discount)

REDEMPTION:
- redeem_voucher: +1 on used_count in a single UPDATE. It does NOT re-run
  the validity chain, but the UPDATE itself refuses to pass usage_limit.
- redeem_if_valid: one conditional UPDATE carrying every guard from the
  chain, so a voucher cannot be validated by two requests and redeemed past
  its limit.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from flask import current_app
from sqlalchemy import or_, update

from ..errors import ConflictError, DomainError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DiscountVoucher
from ..money import ZERO, money_to_json, quantize_money
from ..pagination import paginate
from ..time_utils import coerce_datetime, utcnow
from ..validation import (
    ModelValidationPolicy,
    coerce_decimal,
    enforce_rules_discount_voucher,
    validate_payload,
)
from .concurrency import commit_or_conflict, run_with_retry


CODE_ATTEMPTS = 5

CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "description", "discount_type", "value", "min_order_amount",
        "max_discount_amount", "usage_limit", "valid_from", "valid_until", "is_active",
    },
    required_on_create={"title", "discount_type", "value", "usage_limit", "valid_from", "valid_until"},
)

# code and used_count are never client-writable
UPDATE_POLICY = ModelValidationPolicy(writable_fields=CREATE_POLICY.writable_fields)

SORTABLE_FIELDS = {
    "created_at": DiscountVoucher.created_at,
    "updated_at": DiscountVoucher.updated_at,
    "code": DiscountVoucher.code,
    "title": DiscountVoucher.title,
    "value": DiscountVoucher.value,
    "valid_until": DiscountVoucher.valid_until,
    "used_count": DiscountVoucher.used_count,
}


class VoucherStatus(str, Enum):
    VALID = "VALID"
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    BELOW_MINIMUM = "BELOW_MINIMUM"


@dataclass
class VoucherCheck:
    status: VoucherStatus
    message: str
    order_amount: Decimal
    voucher: DiscountVoucher | None = None
    discount_amount: Decimal = ZERO
    final_amount: Decimal | None = None

    @property
    def is_valid(self) -> bool:
        return self.status is VoucherStatus.VALID

    def to_dict(self) -> dict:
        data = {
            "status": self.status.value,
            "valid": self.is_valid,
            "message": self.message,
        }
        if self.voucher is not None:
            data["voucher"] = self.voucher.to_summary()
        if self.is_valid:
            data["discount"] = {
                "original_amount": money_to_json(self.order_amount),
                "discount_amount": money_to_json(self.discount_amount),
                "final_amount": money_to_json(self.final_amount),
                "savings": money_to_json(self.discount_amount),
            }
        return data


class VoucherRejectedError(DomainError):
    """A voucher failed the validity chain. Carries the failing status."""

    def __init__(self, check: VoucherCheck):
        super().__init__(check.message)
        self.check = check
        self.status = check.status
        self.status_code = 404 if check.status is VoucherStatus.NOT_FOUND else 400

    def to_dict(self) -> dict:
        return {"error": self.message, "status": self.status.value}


# =============================================================================
# PURE RULES
# =============================================================================

def generate_voucher_code(prefix: str = "VCH") -> str:
    """PREFIX-<last 6 digits of epoch ms>-<4 random upper hex>, e.g. VCH-482913-9F0A."""
    suffix = str(int(time.time() * 1000))[-6:]
    return f"{prefix}-{suffix}-{secrets.token_hex(2).upper()}"


def compute_discount(discount_type: str, value, order_amount, max_discount_amount=None) -> tuple[Decimal, Decimal]:
    """Return (discount_amount, final_amount), both rounded to cents."""
    value = Decimal(str(value))
    order_amount = Decimal(str(order_amount))

    if discount_type == "percentage":
        discount = order_amount * value / 100
        if max_discount_amount and discount > Decimal(str(max_discount_amount)):
            discount = Decimal(str(max_discount_amount))
    elif discount_type == "fixed":
        discount = value
    else:
        raise ValidationError(f"Unknown discount type: {discount_type}")

    discount = quantize_money(discount)
    final = quantize_money(max(ZERO, order_amount - discount))
    return discount, final


def _evaluate(voucher: DiscountVoucher | None, order_amount: Decimal, now: datetime) -> VoucherCheck:
    if voucher is None:
        return VoucherCheck(VoucherStatus.NOT_FOUND, "Voucher not found", order_amount)

    def reject(status, message):
        return VoucherCheck(status, message, order_amount, voucher=voucher)

    if not voucher.is_active:
        return reject(VoucherStatus.INACTIVE, "Voucher is not active")
    if now < coerce_datetime(voucher.valid_from):
        return reject(VoucherStatus.NOT_YET_VALID, "Voucher is not yet valid")
    if now > coerce_datetime(voucher.valid_until):
        return reject(VoucherStatus.EXPIRED, "Voucher has expired")
    if voucher.used_count >= voucher.usage_limit:
        return reject(VoucherStatus.LIMIT_EXCEEDED, "Voucher usage limit exceeded")
    minimum = voucher.min_order_amount or ZERO
    if order_amount < minimum:
        return reject(VoucherStatus.BELOW_MINIMUM, f"Minimum order amount is {quantize_money(minimum)}")

    discount, final = compute_discount(
        voucher.discount_type, voucher.value, order_amount, voucher.max_discount_amount,
    )
    return VoucherCheck(
        VoucherStatus.VALID,
        "Voucher is valid",
        order_amount,
        voucher=voucher,
        discount_amount=discount,
        final_amount=final,
    )


def _order_amount(value) -> Decimal:
    amount = coerce_decimal(0 if value in (None, "") else value, "order_amount")
    if amount < 0:
        raise ValidationError("order_amount must be >= 0")
    return amount


def _now(now) -> datetime:
    return coerce_datetime(now) if now is not None else utcnow()


# =============================================================================
# VALIDATION / REDEMPTION
# =============================================================================

def find_by_code(code: str) -> DiscountVoucher | None:
    return db.session.query(DiscountVoucher).filter_by(code=(code or "").strip()).first()


def validate_voucher(code: str, order_amount=0, now=None) -> VoucherCheck:
    """Read-only check. Never raises for a rejected voucher; see check.status."""
    amount = _order_amount(order_amount)
    return _evaluate(find_by_code(code), amount, _now(now))


def redeem_voucher(code: str, user_id: int | None = None) -> DiscountVoucher:
    """
    Count one use of a voucher.

    Not idempotent: each call adds exactly one. Validity dates, active flag
    and minimum order are not re-checked here; callers wanting that use
    redeem_if_valid.

    Raises:
        NotFoundError: no voucher with this code
        InvalidStateError: usage_limit already reached
    """
    code = (code or "").strip()

    def _op():
        stmt = (
            update(DiscountVoucher)
            .where(
                DiscountVoucher.code == code,
                DiscountVoucher.used_count < DiscountVoucher.usage_limit,
            )
            .values(
                used_count=DiscountVoucher.used_count + 1,
                updated_by=user_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            db.session.rollback()
            if find_by_code(code) is None:
                raise NotFoundError("Voucher not found")
            raise InvalidStateError("Voucher usage limit exceeded")
        db.session.commit()
        return find_by_code(code)

    return run_with_retry(_op)


def redeem_if_valid(code: str, order_amount, user_id: int | None = None, now=None) -> VoucherCheck:
    """
    Validate and redeem in one step.

    The increment is conditional on the same guards as validate_voucher. If
    another request consumed the last use between the check and the update,
    the chain is re-run to report why.

    Raises:
        VoucherRejectedError: any guard failed (status on the exception)
    """
    amount = _order_amount(order_amount)
    at = _now(now)
    code = (code or "").strip()

    def _op():
        check = _evaluate(find_by_code(code), amount, at)
        if not check.is_valid:
            raise VoucherRejectedError(check)

        stmt = (
            update(DiscountVoucher)
            .where(
                DiscountVoucher.code == code,
                DiscountVoucher.is_active.is_(True),
                DiscountVoucher.valid_from <= at,
                DiscountVoucher.valid_until >= at,
                DiscountVoucher.used_count < DiscountVoucher.usage_limit,
                DiscountVoucher.min_order_amount <= amount,
            )
            .values(
                used_count=DiscountVoucher.used_count + 1,
                updated_by=user_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            db.session.rollback()
            check = _evaluate(find_by_code(code), amount, at)
            if check.is_valid:
                check = VoucherCheck(
                    VoucherStatus.LIMIT_EXCEEDED, "Voucher usage limit exceeded", amount, voucher=check.voucher,
                )
            raise VoucherRejectedError(check)

        db.session.commit()
        check.voucher = find_by_code(code)
        return check

    return run_with_retry(_op)


# =============================================================================
# CRUD
# =============================================================================

def get_discount_voucher(voucher_id: int) -> DiscountVoucher:
    voucher = db.session.get(DiscountVoucher, voucher_id)
    if voucher is None:
        raise NotFoundError("Voucher not found")
    return voucher


def list_discount_vouchers(
    *,
    search: str | None = None,
    discount_type: str | None = None,
    is_active: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page=None,
    limit=None,
) -> dict:
    q = db.session.query(DiscountVoucher)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            DiscountVoucher.title.ilike(pattern),
            DiscountVoucher.description.ilike(pattern),
            DiscountVoucher.code.ilike(pattern),
        ))
    if discount_type:
        q = q.filter(DiscountVoucher.discount_type == discount_type)
    if is_active is not None:
        q = q.filter(DiscountVoucher.is_active.is_(is_active))

    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(f"Cannot sort by: {sort_by}")
    ordering = column.asc() if sort_order == "asc" else column.desc()
    q = q.order_by(ordering, DiscountVoucher.id.asc())

    rows, meta = paginate(q, page, limit)
    return {"vouchers": [v.to_dict() for v in rows], "pagination": meta}


def create_discount_voucher(payload: dict, user_id: int | None = None) -> DiscountVoucher:
    """
    Create a voucher with a generated code.

    The code is re-checked against stored codes before insert; after
    CODE_ATTEMPTS collisions a ConflictError is raised.
    """
    patch = validate_payload(model=DiscountVoucher, payload=payload, policy=CREATE_POLICY, partial=False)
    patch.setdefault("min_order_amount", ZERO)
    if patch["discount_type"] == "fixed":
        patch["max_discount_amount"] = None
    enforce_rules_discount_voucher(patch)

    prefix = current_app.config.get("VOUCHER_CODE_PREFIX", "VCH")

    def _op():
        for _ in range(CODE_ATTEMPTS):
            code = generate_voucher_code(prefix)
            if find_by_code(code) is None:
                break
        else:
            raise ConflictError("Voucher code already exists, please try again")

        now = utcnow()
        voucher = DiscountVoucher(
            **patch,
            code=code,
            used_count=0,
            created_by=user_id,
            updated_by=user_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(voucher)
        commit_or_conflict("Voucher code already exists, please try again")
        return voucher

    return run_with_retry(_op)


def update_discount_voucher(voucher_id: int, payload: dict, user_id: int | None = None) -> DiscountVoucher:
    patch = validate_payload(model=DiscountVoucher, payload=payload, policy=UPDATE_POLICY, partial=True)

    def _op():
        voucher = get_discount_voucher(voucher_id)
        merged = {
            "discount_type": voucher.discount_type,
            "valid_from": coerce_datetime(voucher.valid_from),
            "valid_until": coerce_datetime(voucher.valid_until),
            **patch,
        }
        if "value" not in patch and "discount_type" in patch:
            merged["value"] = voucher.value
        enforce_rules_discount_voucher(merged)

        limit = patch.get("usage_limit")
        if limit is not None and limit < voucher.used_count:
            raise ValidationError(f"usage_limit cannot be below used_count ({voucher.used_count})")

        for key, value in patch.items():
            setattr(voucher, key, value)
        if voucher.discount_type == "fixed":
            voucher.max_discount_amount = None

        voucher.updated_by = user_id
        voucher.updated_at = utcnow()
        commit_or_conflict("Voucher code already exists")
        return voucher

    return run_with_retry(_op)


def deactivate_discount_voucher(voucher_id: int, user_id: int | None = None) -> DiscountVoucher:
    """Soft delete: the voucher stops validating but keeps its usage history."""
    def _op():
        voucher = get_discount_voucher(voucher_id)
        voucher.is_active = False
        voucher.updated_by = user_id
        voucher.updated_at = utcnow()
        db.session.commit()
        return voucher

    return run_with_retry(_op)
