"""
HTTP contract tests.

Verifies:
- Unauthenticated requests return 401, staff denied admin operations (403)
- Purchases/sales return 201 with the new stock level
- Typed errors map to stable status codes and error codes
- Stock overview, alerts and reconciliation endpoints
"""

from datetime import timedelta

import pytest

from stockroom.errors import LedgerUnavailable
from stockroom.services import catalog_service, stock_service
from stockroom.time_utils import today_utc


def buy(client, headers, product, shelf, quantity, **extra):
    body = {"product_id": product.id, "shelf_id": shelf.shelf_id, "quantity": quantity, "unit_cost_cents": 120}
    body.update(extra)
    return client.post("/api/purchases", json=body, headers=headers)


def sell(client, headers, product, quantity, **extra):
    body = {"product_id": product.id, "quantity": quantity}
    body.update(extra)
    return client.post("/api/sales", json=body, headers=headers)


# =============================================================================
# AUTH
# =============================================================================


class TestAuth:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/purchases"),
            ("GET", "/api/purchases"),
            ("POST", "/api/sales"),
            ("GET", "/api/stock"),
            ("GET", "/api/stock/alerts"),
            ("GET", "/api/locations"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_login_me_logout(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"username": "staff", "password": "Password123"})
        assert resp.status_code == 200
        token = resp.json["token"]
        headers = {"Authorization": f"Bearer {token}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["user"]["role"] == "staff"
        assert "password_hash" not in me.json["user"]

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_bad_credentials(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"username": "staff", "password": "wrong"})
        assert resp.status_code == 401
        resp = client.post("/api/auth/login", json={})
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("POST", "/api/products", {"sku": "X1", "name": "X"}),
            ("PATCH", "/api/products/1", {"reorder_level": 3}),
            ("POST", "/api/products/1/deactivate", None),
            ("POST", "/api/categories", {"name": "Tablets"}),
            ("POST", "/api/locations/zones", {"code": "B", "name": "Back"}),
            ("GET", "/api/stock/reconcile", None),
        ],
    )
    def test_staff_denied_admin_operations(self, client, staff_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=staff_headers)
        assert resp.status_code == 403


# =============================================================================
# PURCHASES
# =============================================================================


class TestPurchasesApi:

    def test_create_purchase(self, client, staff_headers, product, shelf):
        resp = buy(client, staff_headers, product, shelf, 50)

        assert resp.status_code == 201
        assert resp.json["new_stock_level"] == 50
        assert resp.json["purchase"]["total_cost"] == "60.00"
        assert resp.json["purchase"]["location_code"] == "R-C01-S01"

    def test_decimal_cost_and_location_code(self, client, staff_headers, product, shelf):
        resp = client.post("/api/purchases", json={
            "product_id": product.id,
            "location_code": "R-C01-S01",
            "quantity": 10,
            "unit_cost": "1.20",
        }, headers=staff_headers)

        assert resp.status_code == 201
        assert resp.json["purchase"]["unit_cost_cents"] == 120
        assert resp.json["purchase"]["shelf_id"] == shelf.shelf_id

    @pytest.mark.parametrize(
        "override,code",
        [
            ({"quantity": 0}, "INVALID_QUANTITY"),
            ({"quantity": -2}, "INVALID_QUANTITY"),
            ({"quantity": 1.5}, "VALIDATION_ERROR"),
            ({"unit_cost_cents": -1}, "INVALID_COST"),
            ({"unexpected": 1}, "VALIDATION_ERROR"),
            ({"quantity": 10**10}, "INVALID_QUANTITY"),
            ({"quantity": 2**70}, "VALIDATION_ERROR"),
            ({"quantity": 1_000_000, "unit_cost_cents": 999_999_999}, "INVALID_COST"),
            ({"location_code": 123}, "VALIDATION_ERROR"),
        ],
    )
    def test_validation_errors(self, client, staff_headers, product, shelf, override, code):
        extra = dict(override)
        quantity = extra.pop("quantity", 5)
        resp = buy(client, staff_headers, product, shelf, quantity, **extra)
        assert resp.status_code == 400
        assert resp.json["code"] == code
        assert stock_service.get_current_stock(product.id) == 0

    def test_missing_fields(self, client, staff_headers, db_session):
        resp = client.post("/api/purchases", json={"quantity": 1}, headers=staff_headers)
        assert resp.status_code == 400
        assert "Missing required fields" in resp.json["error"]

    def test_unknown_product_and_shelf(self, client, staff_headers, product, shelf):
        resp = client.post("/api/purchases", json={
            "product_id": 9999, "shelf_id": shelf.shelf_id, "quantity": 1, "unit_cost_cents": 1,
        }, headers=staff_headers)
        assert resp.status_code == 404
        assert resp.json["code"] == "PRODUCT_NOT_FOUND"

        resp = client.post("/api/purchases", json={
            "product_id": product.id, "shelf_id": 9999, "quantity": 1, "unit_cost_cents": 1,
        }, headers=staff_headers)
        assert resp.status_code == 404
        assert resp.json["code"] == "SHELF_NOT_FOUND"

    def test_history(self, client, staff_headers, product, shelf):
        buy(client, staff_headers, product, shelf, 5)
        buy(client, staff_headers, product, shelf, 7)

        resp = client.get("/api/purchases?limit=1", headers=staff_headers)

        assert resp.status_code == 200
        assert len(resp.json["purchases"]) == 1
        assert resp.json["purchases"][0]["quantity"] == 7

    @pytest.mark.parametrize("query", ["limit=abc", "limit=0", "limit=-3", "product_id=abc", "product_id=1.5"])
    def test_history_rejects_bad_query_args(self, client, staff_headers, db_session, query):
        for path in ("/api/purchases", "/api/sales"):
            resp = client.get(f"{path}?{query}", headers=staff_headers)
            assert resp.status_code == 400, f"{path}?{query} returned {resp.status_code}"
            assert resp.json["code"] == "VALIDATION_ERROR"


# =============================================================================
# SALES
# =============================================================================


class TestSalesApi:

    def test_create_sale(self, client, staff_headers, product, shelf):
        buy(client, staff_headers, product, shelf, 50)

        resp = sell(client, staff_headers, product, 12, unit_price_cents=180)

        assert resp.status_code == 201
        assert resp.json["new_stock_level"] == 38
        assert resp.json["sale"]["total_amount"] == "21.60"

    def test_price_defaults_to_selling_price(self, client, staff_headers, product, shelf):
        buy(client, staff_headers, product, shelf, 5)
        resp = sell(client, staff_headers, product, 1)
        assert resp.status_code == 201
        assert resp.json["sale"]["unit_price_cents"] == 216

    @pytest.mark.parametrize(
        "quantity,extra,code",
        [
            (10**10, {}, "INVALID_QUANTITY"),
            (2**70, {}, "VALIDATION_ERROR"),
            (1_000_000, {"unit_price_cents": 999_999_999}, "INVALID_PRICE"),
        ],
    )
    def test_oversized_sale_is_400(self, client, staff_headers, product, shelf, quantity, extra, code):
        buy(client, staff_headers, product, shelf, 5)
        resp = sell(client, staff_headers, product, quantity, **extra)
        assert resp.status_code == 400
        assert resp.json["code"] == code
        assert stock_service.get_current_stock(product.id) == 5

    def test_insufficient_stock_is_409(self, client, staff_headers, product, shelf):
        buy(client, staff_headers, product, shelf, 5)

        resp = sell(client, staff_headers, product, 6)

        assert resp.status_code == 409
        assert resp.json["code"] == "INSUFFICIENT_STOCK"
        assert resp.json["available"] == 5
        assert resp.json["requested"] == 6
        assert "retryable" not in resp.json
        assert stock_service.get_current_stock(product.id) == 5

    def test_storage_failure_is_503_and_retryable(self, client, staff_headers, product, monkeypatch):
        def unavailable(**kwargs):
            raise LedgerUnavailable("Storage temporarily unavailable; no changes were made")

        monkeypatch.setattr(stock_service, "record_sale", unavailable)

        resp = sell(client, staff_headers, product, 1)

        assert resp.status_code == 503
        assert resp.json["code"] == "LEDGER_UNAVAILABLE"
        assert resp.json["retryable"] is True

    def test_unexpected_error_is_500_without_details(self, client, staff_headers, product, monkeypatch):
        def broken(**kwargs):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(stock_service, "record_sale", broken)

        resp = sell(client, staff_headers, product, 1)

        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}

    def test_history(self, client, staff_headers, product, shelf):
        buy(client, staff_headers, product, shelf, 5)
        sell(client, staff_headers, product, 2)
        resp = client.get(f"/api/sales?product_id={product.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["sales"][0]["recorded_by_name"] == "Staff Member"


# =============================================================================
# STOCK
# =============================================================================


class TestStockApi:

    def test_overview_and_filters(self, client, staff_headers, product, second_product, shelf):
        catalog_service.create_product(sku="P003", name="Cough Syrup", cost_price_cents=500, reorder_level=2)
        buy(client, staff_headers, product, shelf, 20)        # reorder 5 -> in_stock
        buy(client, staff_headers, second_product, shelf, 4)  # reorder 10 -> low_stock

        resp = client.get("/api/stock", headers=staff_headers)

        assert resp.status_code == 200
        summary = resp.json["summary"]
        assert summary == {
            "in_stock": 1,
            "low_stock": 1,
            "out_of_stock": 1,
            "total_value_cents": 20 * 120 + 4 * 300,
        }
        assert [p["current_stock"] for p in resp.json["products"]] == [0, 4, 20]

        low = client.get("/api/stock?filter=low", headers=staff_headers).json["products"]
        assert [p["sku"] for p in low] == ["P002"]
        out = client.get("/api/stock?filter=out", headers=staff_headers).json["products"]
        assert [p["sku"] for p in out] == ["P003"]

        assert client.get("/api/stock?filter=bogus", headers=staff_headers).status_code == 400

    def test_product_stock(self, client, staff_headers, product, shelf):
        resp = client.get(f"/api/stock/{product.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["current_stock"] == 0
        assert resp.json["stock_status"] == "out_of_stock"
        assert resp.json["stock_level"] is None

        buy(client, staff_headers, product, shelf, 3)
        resp = client.get(f"/api/stock/{product.id}", headers=staff_headers)
        assert resp.json["stock_status"] == "low_stock"
        assert resp.json["totals"]["purchased_quantity"] == 3

        assert client.get("/api/stock/9999", headers=staff_headers).status_code == 404

    def test_alerts(self, client, staff_headers, product, second_product, shelf):
        soon = today_utc() + timedelta(days=10)
        catalog_service.update_product(product.id, {"expiry_date": soon})
        never_stocked = catalog_service.create_product(sku="P009", name="Never Stocked")

        buy(client, staff_headers, product, shelf, 30)
        buy(client, staff_headers, second_product, shelf, 2)
        sell(client, staff_headers, second_product, 2)

        resp = client.get("/api/stock/alerts", headers=staff_headers)

        assert resp.status_code == 200
        assert resp.json["out_of_stock_count"] == 1
        assert resp.json["low_stock_items"] == []
        expiring = resp.json["expiring_items"]
        assert len(expiring) == 1
        assert expiring[0]["sku"] == "P001"
        assert expiring[0]["days_until_expiry"] == 10
        assert never_stocked.sku not in [i["sku"] for i in resp.json["low_stock_items"]]

        narrow = client.get("/api/stock/alerts?days=5", headers=staff_headers)
        assert narrow.json["expiring_items"] == []

        bad = client.get("/api/stock/alerts?days=soon", headers=staff_headers)
        assert bad.status_code == 400

    def test_reconcile_admin(self, client, admin_headers, product, shelf):
        buy(client, admin_headers, product, shelf, 5)
        resp = client.get("/api/stock/reconcile", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["ok"] is True
        assert resp.json["checked"] == 1


# =============================================================================
# CATALOG + LOCATIONS
# =============================================================================


class TestCatalogApi:

    def test_create_update_deactivate(self, client, admin_headers, staff_headers):
        resp = client.post("/api/products", json={
            "sku": "A100", "name": "Amoxicillin", "cost_price": "2.50", "selling_price": "4.00",
            "reorder_level": 8, "expiry_date": "2027-01-31",
        }, headers=admin_headers)
        assert resp.status_code == 201
        product = resp.json["product"]
        assert product["cost_price_cents"] == 250
        assert product["selling_price"] == "4.00"
        assert product["expiry_date"] == "2027-01-31"

        dup = client.post("/api/products", json={"sku": "A100", "name": "Again"}, headers=admin_headers)
        assert dup.status_code == 409

        patched = client.patch(f"/api/products/{product['id']}", json={"reorder_level": 3}, headers=admin_headers)
        assert patched.status_code == 200
        assert patched.json["product"]["reorder_level"] == 3

        sku_change = client.patch(f"/api/products/{product['id']}", json={"sku": "B1"}, headers=admin_headers)
        assert sku_change.status_code == 400

        found = client.get("/api/products/search?q=amox", headers=staff_headers)
        assert [p["sku"] for p in found.json["products"]] == ["A100"]

        by_sku = client.get("/api/products/sku/A100", headers=staff_headers)
        assert by_sku.json["product"]["id"] == product["id"]
        missing = client.get("/api/products/sku/NOPE", headers=staff_headers)
        assert missing.status_code == 404
        assert missing.json["code"] == "PRODUCT_NOT_FOUND"

        deact = client.post(f"/api/products/{product['id']}/deactivate", headers=admin_headers)
        assert deact.status_code == 200
        assert deact.json["product"]["is_active"] is False
        assert client.get("/api/products", headers=staff_headers).json["products"] == []
        assert client.get("/api/products?limit=abc", headers=staff_headers).status_code == 400
        assert client.get("/api/products?limit=0", headers=staff_headers).status_code == 400

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post("/api/products", json={"sku": "N1", "name": "Neg", "cost_price_cents": -5},
                           headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "INVALID_PRICE"

    def test_categories(self, client, admin_headers, staff_headers):
        resp = client.post("/api/categories", json={"name": "Tablets"}, headers=admin_headers)
        assert resp.status_code == 201
        assert client.post("/api/categories", json={"name": "Tablets"}, headers=admin_headers).status_code == 409
        names = [c["name"] for c in client.get("/api/categories", headers=staff_headers).json["categories"]]
        assert names == ["Tablets"]


class TestLocationsApi:

    def test_admin_builds_hierarchy(self, client, admin_headers, staff_headers, db_session):
        zone = client.post("/api/locations/zones", json={"code": "b", "name": "Back"}, headers=admin_headers)
        assert zone.status_code == 201
        assert zone.json["zone"]["code"] == "B"

        chamber = client.post("/api/locations/chambers", json={
            "zone_id": zone.json["zone"]["id"], "chamber_number": 2,
        }, headers=admin_headers)
        assert chamber.status_code == 201

        too_far = client.post("/api/locations/chambers", json={
            "zone_id": zone.json["zone"]["id"], "chamber_number": 100,
        }, headers=admin_headers)
        assert too_far.status_code == 400

        shelf = client.post("/api/locations/shelves", json={
            "chamber_id": chamber.json["chamber"]["id"], "shelf_number": 4,
        }, headers=admin_headers)
        assert shelf.status_code == 201
        assert shelf.json["location"]["code"] == "B-C02-S04"

        listing = client.get("/api/locations", headers=staff_headers)
        assert [loc["code"] for loc in listing.json["locations"]] == ["B-C02-S04"]

        resolved = client.get("/api/locations/resolve?code=B-C02-S04", headers=staff_headers)
        assert resolved.json["location"]["shelf_id"] == shelf.json["shelf"]["id"]


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
    assert resp.json["checks"]["ledger"]["status"] == "healthy"
