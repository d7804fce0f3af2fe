"""
HTTP surface tests.

Verifies:
- Unauthenticated requests return 401, staff denied management routes (403)
- Domain errors map to their status codes
- End-to-end flows for inventory, discount vouchers, vouchers and returns
"""

import pytest

from conftest import PASSWORD, auth_headers, get_auth_token
from voucherdesk.services import category_service, reporting_service, stock_service


# =============================================================================
# AUTHENTICATION / AUTHORIZATION
# =============================================================================


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/categories"),
            ("GET", "/api/inventory"),
            ("GET", "/api/inventory/stats"),
            ("PATCH", "/api/inventory/1/stock"),
            ("GET", "/api/discount-vouchers"),
            ("GET", "/api/discount-vouchers/validate/VCH-000000-0000"),
            ("POST", "/api/discount-vouchers/apply/VCH-000000-0000"),
            ("GET", "/api/vouchers/purchase"),
            ("POST", "/api/vouchers/sales"),
            ("GET", "/api/returns/purchase"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


class TestAuth:
    def test_login_me_logout(self, client, admin_user):
        token = get_auth_token(client, "admin", PASSWORD)
        assert token

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["role"] == "admin"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_wrong_password(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={}).status_code == 400


class TestStaffDenied:
    def test_cannot_create_item(self, client, staff_headers):
        resp = client.post("/api/inventory", json={}, headers=staff_headers)
        assert resp.status_code == 403

    def test_cannot_create_discount_voucher(self, client, staff_headers):
        resp = client.post("/api/discount-vouchers", json={}, headers=staff_headers)
        assert resp.status_code == 403

    def test_cannot_void_voucher(self, client, staff_headers):
        resp = client.delete("/api/vouchers/purchase/PV%20001", headers=staff_headers)
        assert resp.status_code == 403


def test_health(client, db_session):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventoryRoutes:
    def _create(self, client, headers, **overrides):
        payload = {
            "item_code": "RICE-5KG",
            "item_name": "Rice 5kg",
            "unit": "bag",
            "rate": 12.5,
            "cost_price": 10,
            "quantity": 10,
            "min_stock_level": 5,
        }
        payload.update(overrides)
        return client.post("/api/inventory", json=payload, headers=headers)

    def test_create_adjust_and_stats(self, client, admin_headers):
        created = self._create(client, admin_headers)
        assert created.status_code == 201
        item = created.json["item"]
        assert item["status"] == "In Stock"
        assert item["total"] == 125.0

        adjusted = client.patch(
            f"/api/inventory/{item['id']}/stock",
            json={"operation": "subtract", "quantity": 12},
            headers=admin_headers,
        )
        assert adjusted.status_code == 200
        assert adjusted.json["adjustment"]["new_quantity"] == 0
        assert adjusted.json["adjustment"]["status"] == "Out of Stock"

        stats = client.get("/api/inventory/stats", headers=admin_headers).json["stats"]
        assert stats["total_items"] == 1
        assert stats["out_of_stock_count"] == 1
        assert stats["low_stock_count"] == 1

        low = client.get("/api/inventory/low-stock", headers=admin_headers).json
        assert low["count"] == 1

    def test_staff_can_adjust_stock(self, client, admin_headers, staff_headers):
        item = self._create(client, admin_headers).json["item"]
        resp = client.patch(
            f"/api/inventory/{item['id']}/stock",
            json={"operation": "add", "quantity": 5},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["adjustment"]["new_quantity"] == 15

    def test_duplicate_code_409(self, client, admin_headers):
        self._create(client, admin_headers)
        resp = self._create(client, admin_headers)
        assert resp.status_code == 409

    def test_bad_operation_400(self, client, admin_headers):
        item = self._create(client, admin_headers).json["item"]
        resp = client.patch(
            f"/api/inventory/{item['id']}/stock",
            json={"operation": "double", "quantity": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_item_404(self, client, admin_headers):
        resp = client.patch("/api/inventory/999/stock", json={"operation": "add", "quantity": 1}, headers=admin_headers)
        assert resp.status_code == 404

    def test_get_item_includes_margin(self, client, admin_headers):
        item = self._create(client, admin_headers).json["item"]
        resp = client.get(f"/api/inventory/{item['id']}", headers=admin_headers)
        assert resp.json["item"]["profit_margin"] == 20.0

    def test_delete_deactivates(self, client, admin_headers):
        item = self._create(client, admin_headers).json["item"]
        resp = client.delete(f"/api/inventory/{item['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["is_active"] is False
        listing = client.get("/api/inventory", headers=admin_headers).json
        assert listing["pagination"]["total"] == 0

    def test_bulk(self, client, admin_headers):
        resp = client.post("/api/inventory/bulk", json={"items": [
            {"item_code": "A-1", "item_name": "Apple", "unit": "kg", "rate": 2},
            {"item_code": "B-1", "item_name": "Banana", "unit": "kg"},
        ]}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["summary"]["successfully_created"] == 1
        assert len(resp.json["errors"]) == 1

    def test_category_conflict(self, client, admin_headers):
        assert client.post("/api/categories", json={"name": "Grocery"}, headers=admin_headers).status_code == 201
        assert client.post("/api/categories", json={"name": "GROCERY"}, headers=admin_headers).status_code == 409

    def test_category_update_accepts_string_flag(self, client, admin_headers, admin_user):
        created = client.post("/api/categories", json={"name": "Frozen"}, headers=admin_headers).json["category"]
        resp = client.put(f"/api/categories/{created['id']}", json={"is_active": "false"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["category"]["is_active"] is False
        assert resp.json["category"]["updated_by"] == admin_user.id

    def test_adjustment_echoes_reason(self, client, admin_headers):
        item = self._create(client, admin_headers).json["item"]
        resp = client.patch(
            f"/api/inventory/{item['id']}/stock",
            json={"operation": "add", "quantity": 1, "reason": "Weekly delivery"},
            headers=admin_headers,
        )
        assert resp.json["adjustment"]["reason"] == "Weekly delivery"

    @pytest.mark.parametrize("path,target", [
        ("/api/inventory/stats", (reporting_service, "inventory_stats")),
        ("/api/inventory/low-stock", (stock_service, "low_stock_items")),
        ("/api/categories", (category_service, "list_categories")),
    ])
    def test_unexpected_failure_is_logged(self, client, admin_headers, monkeypatch, caplog, path, target):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(*target, broken)
        resp = client.get(path, headers=admin_headers)

        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}
        assert any(record.exc_info for record in caplog.records)


# =============================================================================
# DISCOUNT VOUCHERS
# =============================================================================


class TestDiscountRoutes:
    def _create(self, client, headers, **overrides):
        payload = {
            "title": "Summer Sale",
            "discount_type": "percentage",
            "value": 20,
            "min_order_amount": 100,
            "max_discount_amount": 50,
            "usage_limit": 2,
            "valid_from": "2000-01-01T00:00:00Z",
            "valid_until": "2999-12-31T23:59:59Z",
        }
        payload.update(overrides)
        return client.post("/api/discount-vouchers", json=payload, headers=headers)

    def test_validate_and_apply(self, client, admin_headers, staff_headers):
        created = self._create(client, admin_headers)
        assert created.status_code == 201
        code = created.json["voucher"]["code"]

        valid = client.get(f"/api/discount-vouchers/validate/{code}?orderAmount=1000", headers=staff_headers)
        assert valid.status_code == 200
        assert valid.json["discount"]["discount_amount"] == 50.0
        assert valid.json["discount"]["final_amount"] == 950.0

        below = client.get(f"/api/discount-vouchers/validate/{code}?order_amount=50", headers=staff_headers)
        assert below.status_code == 400
        assert below.json["status"] == "BELOW_MINIMUM"

        applied = client.post(f"/api/discount-vouchers/apply/{code}", json={"order_amount": 500}, headers=staff_headers)
        assert applied.status_code == 200
        assert applied.json["used_count"] == 1

        counted = client.post(f"/api/discount-vouchers/apply/{code}", headers=staff_headers)
        assert counted.status_code == 200
        assert counted.json["used_count"] == 2

        exhausted = client.post(f"/api/discount-vouchers/apply/{code}", headers=staff_headers)
        assert exhausted.status_code == 409

        rejected = client.post(f"/api/discount-vouchers/apply/{code}", json={"order_amount": 500}, headers=staff_headers)
        assert rejected.status_code == 400
        assert rejected.json["status"] == "LIMIT_EXCEEDED"

    def test_unknown_code_404(self, client, staff_headers):
        resp = client.get("/api/discount-vouchers/validate/VCH-000000-0000?orderAmount=10", headers=staff_headers)
        assert resp.status_code == 404
        assert resp.json["status"] == "NOT_FOUND"

    def test_invalid_payload_400(self, client, admin_headers):
        assert self._create(client, admin_headers, value=-5).status_code == 400

    def test_list_and_deactivate(self, client, admin_headers):
        voucher = self._create(client, admin_headers).json["voucher"]
        listing = client.get("/api/discount-vouchers?type=percentage", headers=admin_headers).json
        assert listing["pagination"]["total"] == 1

        resp = client.delete(f"/api/discount-vouchers/{voucher['id']}", headers=admin_headers)
        assert resp.json["voucher"]["is_active"] is False

        inactive = client.get(f"/api/discount-vouchers/validate/{voucher['code']}?orderAmount=500", headers=admin_headers)
        assert inactive.json["status"] == "INACTIVE"


# =============================================================================
# TRANSACTION VOUCHERS / RETURNS
# =============================================================================


class TestVoucherRoutes:
    PURCHASE = {
        "date": "2024-06-01",
        "supplier": "Acme Wholesale",
        "items": [{"item_name": "Rice 5kg", "quantity": 10, "rate": 12.5}],
    }

    def test_create_get_void(self, client, admin_headers):
        created = client.post("/api/vouchers/purchase", json=self.PURCHASE, headers=admin_headers)
        assert created.status_code == 201
        assert created.json["voucher"]["id"] == "PV 001"
        assert created.json["voucher"]["total"] == 125.0

        fetched = client.get("/api/vouchers/purchase/PV%20001", headers=admin_headers)
        assert fetched.status_code == 200
        internal = client.get(f"/api/vouchers/purchase/{fetched.json['voucher']['internal_id']}", headers=admin_headers)
        assert internal.json["voucher"]["id"] == "PV 001"

        voided = client.delete("/api/vouchers/purchase/PV%20001", headers=admin_headers)
        assert voided.status_code == 200
        assert voided.json["voucher"]["status"] == "Voided"

        again = client.delete("/api/vouchers/purchase/PV%20001", headers=admin_headers)
        assert again.status_code == 409

    def test_missing_items_400(self, client, staff_headers):
        resp = client.post("/api/vouchers/sales", json={"date": "2024-06-01", "party": "Shop"}, headers=staff_headers)
        assert resp.status_code == 400

    def test_unknown_kind_404(self, client, staff_headers):
        assert client.get("/api/vouchers/transfer", headers=staff_headers).status_code == 404

    def test_list(self, client, staff_headers):
        client.post("/api/vouchers/purchase", json=self.PURCHASE, headers=staff_headers)
        client.post("/api/vouchers/purchase", json=self.PURCHASE, headers=staff_headers)
        resp = client.get("/api/vouchers/purchase?limit=1", headers=staff_headers)
        assert resp.json["pagination"]["total_pages"] == 2
        assert [v["id"] for v in resp.json["vouchers"]] == ["PV 002"]


class TestReturnRoutes:
    def test_lifecycle(self, client, admin_headers):
        created = client.post("/api/returns/sales", json={
            "date": "2024-06-03", "description": "Wrong size", "number_of_entries": 1,
        }, headers=admin_headers)
        assert created.status_code == 201
        assert created.json["return"]["id"] == "SR 001"

        updated = client.put("/api/returns/sales/SR%20001", json={"number_of_entries": 2}, headers=admin_headers)
        assert updated.json["return"]["number_of_entries"] == 2

        assert client.delete("/api/returns/sales/SR%20001", headers=admin_headers).status_code == 200
        assert client.delete("/api/returns/sales/SR%20001", headers=admin_headers).status_code == 409
        assert client.put("/api/returns/sales/SR%20001", json={"description": "x"}, headers=admin_headers).status_code == 409

    def test_not_found(self, client, admin_headers):
        assert client.get("/api/returns/purchase/PR%20404", headers=admin_headers).status_code == 404
