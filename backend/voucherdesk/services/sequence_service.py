# Overview: Display-id allocation for vouchers and returns.

"""
Sequence Allocator

Human-readable ids per document type: "PV 001", "SV 014", "PR 003", ...

DATABASE BACKEND (default):
- One DocumentSequence row per document type.
- The row is bumped with a single UPDATE ... SET next_number = next_number + 1,
  so two requests can never read the same number.
- On first use the row is seeded from the number of documents already stored
  for that type. Data written before the counter existed keeps its numbering.
- Allocation shares the caller's session: if the document insert fails, the
  rollback also returns the number.

MEMORY BACKEND (SEQUENCE_BACKEND="memory"):
- Process-local counters for short-lived dev/test deployments. They reset on
  restart and are not shared between processes. Never the sequence of record.
"""

from __future__ import annotations

import threading

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence, ReturnRecord, TransactionVoucher


# document_type -> (prefix, model, type column, type value)
DOCUMENT_TYPES = {
    "purchase_voucher": ("PV", TransactionVoucher, "voucher_type", "purchase"),
    "sales_voucher": ("SV", TransactionVoucher, "voucher_type", "sales"),
    "purchase_return": ("PR", ReturnRecord, "return_type", "purchase"),
    "sales_return": ("SR", ReturnRecord, "return_type", "sales"),
}

ORDINAL_PAD = 3


def format_display_id(prefix: str, ordinal: int) -> str:
    """'PV', 7 -> 'PV 007'. Ordinals past 999 simply widen ('PV 1000')."""
    return f"{prefix} {ordinal:0{ORDINAL_PAD}d}"


def _resolve(document_type: str):
    try:
        return DOCUMENT_TYPES[document_type]
    except KeyError:
        raise ValidationError(f"Unknown document type: {document_type}")


def count_existing(document_type: str) -> int:
    _, model, column, value = _resolve(document_type)
    return db.session.query(model).filter(getattr(model, column) == value).count()


class LocalSequenceCounter:
    """Process-local monotonic counters, one lock per document type."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._values: dict[str, int] = {}

    def _lock_for(self, document_type: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(document_type)
            if lock is None:
                lock = self._locks[document_type] = threading.Lock()
            return lock

    def next(self, document_type: str, seed=None) -> int:
        """
        Return the next ordinal. ``seed`` is an optional callable giving the
        starting count; it runs once, under the lock, on first use of a type.
        """
        with self._lock_for(document_type):
            if document_type in self._values:
                current = self._values[document_type]
            else:
                current = seed() if seed else 0
            current += 1
            self._values[document_type] = current
            return current

    def peek(self, document_type: str) -> int:
        return self._values.get(document_type, 0)

    def reset(self) -> None:
        with self._guard:
            self._values.clear()


local_counter = LocalSequenceCounter()


def _next_from_database(document_type: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1

    # First allocation for this type: seed from what is already stored
    first = count_existing(document_type) + 1
    savepoint = db.session.begin_nested()
    try:
        db.session.add(DocumentSequence(document_type=document_type, next_number=first + 1))
        savepoint.commit()
        return first
    except IntegrityError:
        # Another request created the row first; bump it like everyone else
        savepoint.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1


def next_ordinal(document_type: str) -> int:
    _resolve(document_type)
    if current_app.config.get("SEQUENCE_BACKEND") == "memory":
        return local_counter.next(document_type, seed=lambda: count_existing(document_type))
    return _next_from_database(document_type)


def allocate_display_id(document_type: str) -> str:
    """
    Allocate the next display id for a document type.

    Must be called inside the unit of work that inserts the document; the
    caller commits. Raises ValidationError for an unknown type.
    """
    prefix = _resolve(document_type)[0]
    return format_display_id(prefix, next_ordinal(document_type))


def sequence_status() -> list[dict]:
    """Current counter per document type (for the CLI)."""
    rows = {row.document_type: row for row in db.session.query(DocumentSequence).all()}
    status = []
    for document_type, (prefix, *_rest) in DOCUMENT_TYPES.items():
        row = rows.get(document_type)
        status.append({
            "document_type": document_type,
            "prefix": prefix,
            "next_number": row.next_number if row else None,
            "stored_documents": count_existing(document_type),
        })
    return status
