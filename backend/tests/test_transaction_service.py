"""
Transaction document tests (vouchers and returns).

Verifies:
- totals: purchase prices quantity * rate, sales honours line totals
- validation happens before anything is written
- lookup by display id, then internal id
- one-way Active -> Voided / Submitted -> Voided lifecycles
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from voucherdesk.errors import InvalidStateError, NotFoundError, ValidationError
from voucherdesk.models import ReturnRecord, TransactionVoucher
from voucherdesk.services import return_service, transaction_service
from voucherdesk.services.transaction_service import compute_total


def _purchase(**overrides):
    data = {
        "date": "2024-06-01",
        "supplier": "Acme Wholesale",
        "items": [
            {"item_name": "Rice 5kg", "quantity": 10, "rate": "12.50", "unit": "bag", "category": "Grocery"},
            {"item_name": "Sugar 1kg", "quantity": 4, "rate": 2, "unit": "bag"},
        ],
    }
    data.update(overrides)
    return transaction_service.create_transaction("purchase", data)


def _return(kind="purchase", **overrides):
    data = {"date": "03/06/2024", "description": "Damaged bags", "number_of_entries": 2}
    data.update(overrides)
    return return_service.create_return(kind, data)


class TestComputeTotal:
    def test_purchase_uses_quantity_times_rate(self):
        lines = [
            {"quantity": 2, "rate": Decimal("10.00"), "total": Decimal("5.00")},
            {"quantity": 1, "rate": Decimal("0.99")},
        ]
        assert compute_total(lines, "purchase") == Decimal("20.99")

    def test_sales_uses_line_total_when_present(self):
        lines = [
            {"quantity": 2, "rate": Decimal("10.00"), "total": Decimal("18.00")},
            {"quantity": 1, "rate": Decimal("0.99"), "total": None},
        ]
        assert compute_total(lines, "sales") == Decimal("18.99")

    def test_unknown_source(self):
        with pytest.raises(ValidationError):
            compute_total([], "transfer")


class TestCreateTransaction:
    def test_purchase(self, db_session):
        voucher = _purchase()
        assert voucher.display_id == "PV 001"
        assert voucher.status == "Active"
        assert voucher.entries == 2
        assert voucher.total == Decimal("133.00")
        data = voucher.to_dict()
        assert data["id"] == "PV 001"
        assert data["supplier"] == "Acme Wholesale"
        assert [line["item_name"] for line in data["items"]] == ["Rice 5kg", "Sugar 1kg"]

    def test_sales_line_totals(self, db_session):
        voucher = transaction_service.create_transaction("sales", {
            "date": "2024-06-02",
            "party": "Corner Shop",
            "items": [
                {"item_name": "Rice 5kg", "quantity": 2, "rate": 15, "total": 28},
                {"item_name": "Salt", "quantity": 3, "rate": 1},
            ],
        })
        assert voucher.display_id == "SV 001"
        assert voucher.total == Decimal("31.00")
        assert voucher.to_dict()["party"] == "Corner Shop"

    @pytest.mark.parametrize("payload", [
        {"supplier": "Acme", "items": [{"item_name": "X", "quantity": 1, "rate": 1}]},
        {"date": "2024-06-01", "items": [{"item_name": "X", "quantity": 1, "rate": 1}]},
        {"date": "2024-06-01", "supplier": "Acme", "items": []},
        {"date": "2024-06-01", "supplier": "Acme", "items": [{"item_name": "X", "quantity": 0, "rate": 1}]},
        {"date": "2024-06-01", "supplier": "Acme", "items": [{"item_name": "X", "quantity": 1, "rate": -1}]},
        {"date": "2024-06-01", "supplier": "Acme", "items": [{"quantity": 1, "rate": 1}]},
        {"date": "not a date", "supplier": "Acme", "items": [{"item_name": "X", "quantity": 1, "rate": 1}]},
    ])
    def test_invalid_payload_writes_nothing(self, db_session, payload):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction("purchase", payload)
        assert db_session.query(TransactionVoucher).count() == 0

    def test_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction("transfer", {})

    def test_actor_stamped(self, db_session, staff_user):
        voucher = transaction_service.create_transaction("purchase", {
            "date": "2024-06-01",
            "supplier": "Acme",
            "items": [{"item_name": "X", "quantity": 1, "rate": 1}],
        }, user_id=staff_user.id)
        assert voucher.created_by == staff_user.id
        assert voucher.updated_by == staff_user.id


class TestTransactionLifecycle:
    def test_lookup_by_display_id_then_internal_id(self, db_session):
        voucher = _purchase()
        assert transaction_service.get_transaction("purchase", "PV 001").id == voucher.id
        assert transaction_service.get_transaction("purchase", str(voucher.id)).id == voucher.id
        with pytest.raises(NotFoundError):
            transaction_service.get_transaction("sales", "PV 001")

    def test_update_items_recomputes(self, db_session):
        _purchase()
        updated = transaction_service.update_transaction("purchase", "PV 001", {
            "items": [{"item_name": "Flour", "quantity": 3, "rate": 4}],
        })
        assert updated.total == Decimal("12.00")
        assert updated.entries == 1
        assert [line.item_name for line in updated.lines] == ["Flour"]

    def test_update_without_items_keeps_total(self, db_session):
        _purchase()
        updated = transaction_service.update_transaction("purchase", "PV 001", {
            "supplier": "Acme Ltd", "date": "2024-06-05",
        })
        assert updated.counterparty == "Acme Ltd"
        assert updated.date == date(2024, 6, 5)
        assert updated.total == Decimal("133.00")

    def test_void_once(self, db_session):
        _purchase()
        voided = transaction_service.void_transaction("purchase", "PV 001")
        assert voided.status == "Voided"
        assert voided.voided_at is not None
        with pytest.raises(InvalidStateError):
            transaction_service.void_transaction("purchase", "PV 001")

    def test_interleaved_void_succeeds_once(self, db_session, monkeypatch, staff_user):
        voucher_id = _purchase().id
        other_user = staff_user.id
        lookup = transaction_service.get_transaction

        def voided_by_other_user(voucher_type, ref):
            found = lookup(voucher_type, ref)
            db_session.execute(
                update(TransactionVoucher)
                .where(TransactionVoucher.id == found.id)
                .values(status="Voided", updated_by=other_user)
                .execution_options(synchronize_session=False)
            )
            db_session.commit()
            return found

        monkeypatch.setattr(db_session(), "expire_on_commit", False)
        monkeypatch.setattr(transaction_service, "get_transaction", voided_by_other_user)

        with pytest.raises(InvalidStateError):
            transaction_service.void_transaction("purchase", "PV 001")

        db_session.expire_all()
        stored = db_session.get(TransactionVoucher, voucher_id)
        assert stored.status == "Voided"
        assert stored.updated_by == other_user

    def test_voided_voucher_not_editable(self, db_session):
        _purchase()
        transaction_service.void_transaction("purchase", "PV 001")
        with pytest.raises(InvalidStateError):
            transaction_service.update_transaction("purchase", "PV 001", {"supplier": "Other"})

    def test_void_keeps_number(self, db_session):
        _purchase()
        transaction_service.void_transaction("purchase", "PV 001")
        assert _purchase().display_id == "PV 002"
        assert db_session.query(TransactionVoucher).count() == 2

    def test_list_paginates_and_filters(self, db_session):
        for _ in range(3):
            _purchase()
        transaction_service.void_transaction("purchase", "PV 002")

        page = transaction_service.list_transactions("purchase", page=1, limit=2)
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_next"] is True
        assert [v["id"] for v in page["vouchers"]] == ["PV 003", "PV 002"]

        voided = transaction_service.list_transactions("purchase", status="Voided")
        assert [v["id"] for v in voided["vouchers"]] == ["PV 002"]


class TestReturns:
    def test_create(self, db_session):
        record = _return()
        assert record.display_id == "PR 001"
        assert record.status == "Submitted"
        assert record.date == date(2024, 6, 3)
        assert record.to_dict()["number_of_entries"] == 2

    def test_sales_returns_numbered_separately(self, db_session):
        _return("purchase")
        assert _return("sales").display_id == "SR 001"

    @pytest.mark.parametrize("overrides", [
        {"date": None},
        {"description": "  "},
        {"number_of_entries": 0},
        {"number_of_entries": "two"},
    ])
    def test_invalid(self, db_session, overrides):
        with pytest.raises(ValidationError):
            _return(**overrides)
        assert db_session.query(ReturnRecord).count() == 0

    def test_update_while_submitted(self, db_session):
        _return()
        updated = return_service.update_return("purchase", "PR 001", {"description": "Torn bags", "number_of_entries": 3})
        assert updated.description == "Torn bags"
        assert updated.entries == 3

    def test_status_not_settable_through_update(self, db_session):
        _return()
        with pytest.raises(ValidationError):
            return_service.update_return("purchase", "PR 001", {"status": "Voided"})

    def test_voiding_voided_return_raises(self, db_session):
        _return()
        return_service.void_return("purchase", "PR 001")
        with pytest.raises(InvalidStateError):
            return_service.void_return("purchase", "PR 001")

    def test_interleaved_void_succeeds_once(self, db_session, monkeypatch, staff_user):
        record_id = _return().id
        other_user = staff_user.id
        lookup = return_service.get_return

        def voided_by_other_user(return_type, ref):
            found = lookup(return_type, ref)
            db_session.execute(
                update(ReturnRecord)
                .where(ReturnRecord.id == found.id)
                .values(status="Voided", updated_by=other_user)
                .execution_options(synchronize_session=False)
            )
            db_session.commit()
            return found

        monkeypatch.setattr(db_session(), "expire_on_commit", False)
        monkeypatch.setattr(return_service, "get_return", voided_by_other_user)

        with pytest.raises(InvalidStateError):
            return_service.void_return("purchase", "PR 001")

        db_session.expire_all()
        stored = db_session.get(ReturnRecord, record_id)
        assert stored.status == "Voided"
        assert stored.updated_by == other_user

    def test_voided_return_not_editable(self, db_session):
        record = _return()
        return_service.void_return("purchase", str(record.id))
        with pytest.raises(InvalidStateError):
            return_service.update_return("purchase", "PR 001", {"description": "Late edit"})

    def test_display_id_never_reused(self, db_session):
        _return()
        return_service.void_return("purchase", "PR 001")
        assert _return().display_id == "PR 002"

    def test_list(self, db_session):
        _return()
        _return()
        result = return_service.list_returns("purchase")
        assert [r["id"] for r in result["returns"]] == ["PR 002", "PR 001"]
