from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


class TransactionVoucher(db.Model):
    """
    Purchase or sales voucher.

    LIFECYCLE: Active -> Voided (one way). Voiding is a soft delete; voided
    vouchers stay in the table and keep their display_id.

    TOTAL: computed once at creation from the lines and frozen. It only
    changes when the lines are explicitly replaced by an update.
    """
    __tablename__ = "transaction_vouchers"
    __table_args__ = (
        db.UniqueConstraint("voucher_type", "display_id", name="uq_transaction_vouchers_type_display"),
        db.Index("ix_transaction_vouchers_type_created", "voucher_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    voucher_type = db.Column(db.String(16), nullable=False, index=True)  # purchase, sales
    display_id = db.Column(db.String(32), nullable=False)

    date = db.Column(db.Date, nullable=False)
    counterparty = db.Column(db.String(255), nullable=False)  # supplier or party

    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    entries = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="Active", index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    lines = db.relationship(
        "TransactionLine",
        backref="voucher",
        order_by="TransactionLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<TransactionVoucher {self.display_id!r} status={self.status}>"

    def to_dict(self) -> dict:
        counterparty_key = "supplier" if self.voucher_type == "purchase" else "party"
        return {
            "id": self.display_id,
            "internal_id": self.id,
            "voucher_type": self.voucher_type,
            "date": self.date.isoformat() if self.date else None,
            counterparty_key: self.counterparty,
            "items": [line.to_dict() for line in self.lines],
            "entries": self.entries,
            "total": money_to_json(self.total),
            "description": f"{self.entries} items - Total: {money_to_json(self.total)}",
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TransactionLine(db.Model):
    __tablename__ = "transaction_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("transaction_vouchers.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    item_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    rate = db.Column(db.Numeric(12, 2), nullable=False)
    unit = db.Column(db.String(32), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    line_total = db.Column(db.Numeric(14, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "quantity": self.quantity,
            "rate": money_to_json(self.rate),
            "unit": self.unit,
            "category": self.category,
            "total": money_to_json(self.line_total),
        }


class ReturnRecord(db.Model):
    """
    Purchase or sales return summary.

    No line items: a return is a dated note with a declared entry count, not
    a reversal of specific stock movements.

    LIFECYCLE: Submitted -> Voided (one way). Editable only while Submitted.
    display_id is assigned once at creation and never reused.
    """
    __tablename__ = "return_records"
    __table_args__ = (
        db.UniqueConstraint("return_type", "display_id", name="uq_return_records_type_display"),
        db.Index("ix_return_records_type_created", "return_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_type = db.Column(db.String(16), nullable=False, index=True)  # purchase, sales
    display_id = db.Column(db.String(32), nullable=False)

    date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=False)
    entries = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="Submitted", index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<ReturnRecord {self.display_id!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.display_id,
            "internal_id": self.id,
            "return_type": self.return_type,
            "date": self.date.isoformat() if self.date else None,
            "description": self.description,
            "number_of_entries": self.entries,
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document counters.

    One row per document type. next_number is only ever advanced by a single
    UPDATE ... SET next_number = next_number + 1.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
