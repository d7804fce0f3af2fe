"""
Return records (purchase and sales returns)

A return is a dated summary note: description plus a declared number of
entries. It does not move stock.

LIFECYCLE:
    Submitted -> Voided   (one way)

- Editable only while Submitted.
- display_id (PR 001 / SR 001) is allocated once at creation and never
  reused, voided or not.
"""

from __future__ import annotations

from sqlalchemy import update

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ReturnRecord
from ..pagination import paginate
from ..time_utils import parse_business_date, utcnow
from ..validation import coerce_int
from .concurrency import commit_or_conflict, run_with_retry
from .sequence_service import allocate_display_id


RETURN_TYPES = {
    "purchase": "purchase_return",
    "sales": "sales_return",
}

RETURN_STATUS_SUBMITTED = "Submitted"
RETURN_STATUS_VOIDED = "Voided"

EDITABLE_FIELDS = ("date", "description", "number_of_entries")


def _document_type(return_type: str) -> str:
    try:
        return RETURN_TYPES[return_type]
    except KeyError:
        raise ValidationError(f"Unknown return type: {return_type}")


def _clean(data: dict, fields) -> dict:
    """Validate the given subset of return fields into column values."""
    cleaned = {}

    if "date" in fields:
        try:
            parsed = parse_business_date(data.get("date"))
        except ValueError:
            raise ValidationError("date must be a date (YYYY-MM-DD or DD/MM/YYYY)")
        if parsed is None:
            raise ValidationError("date is required")
        cleaned["date"] = parsed

    if "description" in fields:
        description = str(data.get("description") or "").strip()
        if not description:
            raise ValidationError("description is required")
        cleaned["description"] = description

    if "number_of_entries" in fields:
        raw = data.get("number_of_entries", data.get("numberOfEntries"))
        if raw in (None, ""):
            raise ValidationError("number_of_entries is required")
        entries = coerce_int(raw, "number_of_entries")
        if entries < 1:
            raise ValidationError("number_of_entries must be a positive integer")
        cleaned["entries"] = entries

    return cleaned


def get_return(return_type: str, ref) -> ReturnRecord:
    """Look up by display id ("PR 002") first, then internal id."""
    _document_type(return_type)
    base = db.session.query(ReturnRecord).filter(ReturnRecord.return_type == return_type)

    key = str(ref).strip()
    record = base.filter(ReturnRecord.display_id == key).first()
    if record is None and key.isdigit():
        record = base.filter(ReturnRecord.id == int(key)).first()
    if record is None:
        raise NotFoundError("Return not found")
    return record


def list_returns(return_type: str, page=None, limit=None, status: str | None = None) -> dict:
    _document_type(return_type)
    q = db.session.query(ReturnRecord).filter(ReturnRecord.return_type == return_type)
    if status:
        q = q.filter(ReturnRecord.status == status)
    q = q.order_by(ReturnRecord.created_at.desc(), ReturnRecord.id.desc())

    rows, meta = paginate(q, page, limit)
    return {"returns": [r.to_dict() for r in rows], "pagination": meta}


def create_return(return_type: str, data: dict, user_id: int | None = None) -> ReturnRecord:
    """
    Create a Submitted return.

    Raises:
        ValidationError: missing date/description or non-positive entry count
    """
    document_type = _document_type(return_type)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    fields = _clean(data, EDITABLE_FIELDS)

    def _op():
        now = utcnow()
        record = ReturnRecord(
            return_type=return_type,
            display_id=allocate_display_id(document_type),
            status=RETURN_STATUS_SUBMITTED,
            created_by=user_id,
            updated_by=user_id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.session.add(record)
        commit_or_conflict("Return number already taken, please retry")
        return record

    return run_with_retry(_op)


def update_return(return_type: str, ref, data: dict, user_id: int | None = None) -> ReturnRecord:
    """Patch date/description/number_of_entries on a Submitted return."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if "status" in data:
        raise ValidationError("status cannot be changed through update; void the return instead")

    present = [f for f in EDITABLE_FIELDS if f in data or (f == "number_of_entries" and "numberOfEntries" in data)]
    fields = _clean(data, present)

    def _op():
        record = get_return(return_type, ref)
        if record.status != RETURN_STATUS_SUBMITTED:
            raise InvalidStateError(f"Cannot edit a {record.status.lower()} return")

        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_by = user_id
        record.updated_at = utcnow()
        db.session.commit()
        return record

    return run_with_retry(_op)


def void_return(return_type: str, ref, user_id: int | None = None) -> ReturnRecord:
    """
    Submitted -> Voided.

    Raises:
        InvalidStateError: already voided, including by a concurrent void
    """
    def _op():
        record = get_return(return_type, ref)
        if record.status == RETURN_STATUS_VOIDED:
            raise InvalidStateError("Return is already voided")

        now = utcnow()
        result = db.session.execute(
            update(ReturnRecord)
            .where(ReturnRecord.id == record.id, ReturnRecord.status == RETURN_STATUS_SUBMITTED)
            .values(status=RETURN_STATUS_VOIDED, voided_at=now, updated_by=user_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise InvalidStateError("Return is already voided")
        db.session.commit()
        return record

    return run_with_retry(_op)
