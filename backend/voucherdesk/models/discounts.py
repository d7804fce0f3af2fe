from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


class DiscountVoucher(db.Model):
    """
    Redeemable discount voucher.

    discount_type:
    - percentage: value is a percent of the order amount, optionally capped
      by max_discount_amount
    - fixed: value is a flat amount (never capped, may exceed the order)

    USAGE: used_count starts at 0, only ever increments (one per redemption)
    and never exceeds usage_limit. The guard lives in the UPDATE statement
    issued by discount_service, not in Python.
    """
    __tablename__ = "discount_vouchers"
    __table_args__ = (
        db.CheckConstraint("used_count >= 0", name="ck_discount_vouchers_used_nonneg"),
        db.CheckConstraint("used_count <= usage_limit", name="ck_discount_vouchers_used_le_limit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)  # percentage, fixed
    value = db.Column(db.Numeric(12, 2), nullable=False)
    min_order_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=False)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<DiscountVoucher code={self.code!r} used={self.used_count}/{self.usage_limit}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "discount_type": self.discount_type,
            "value": money_to_json(self.value),
        }

    def to_dict(self) -> dict:
        data = self.to_summary()
        data.update({
            "min_order_amount": money_to_json(self.min_order_amount),
            "max_discount_amount": money_to_json(self.max_discount_amount),
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        })
        return data
