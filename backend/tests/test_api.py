"""
API tests.

Verifies:
- Requests without a known active user return 401
- Seller role is denied administrator operations (403)
- Checkout, returns and sales-order endpoints map business errors to 400/403/404/409
"""

import pytest

from konta.services import inventory_service

from conftest import user_headers


# =============================================================================
# IDENTITY: 401
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users/me"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/customers"),
            ("GET", "/api/invoices"),
            ("POST", "/api/invoices"),
            ("POST", "/api/invoices/1/returns"),
            ("GET", "/api/sales-orders"),
            ("POST", "/api/purchases"),
            ("GET", "/api/expenses"),
            ("GET", "/api/reports/summary"),
        ],
    )
    def test_requires_user(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_user_id(self, client, db_session):
        resp = client.get("/api/users/me", headers={"X-User-Id": "424242"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, db_session, seller):
        seller.is_active = False
        db_session.commit()
        resp = client.get("/api/users/me", headers=user_headers(seller))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"
        invoicing = resp.json["checks"]["invoicing"]
        assert invoicing["status"] == "healthy"
        assert invoicing["signer_configured"] is False

    def test_health_reports_next_invoice_number(self, client, product, make_invoice):
        make_invoice((product, 1))
        resp = client.get("/api/health")
        assert resp.json["checks"]["database"]["next_numbers"]["INVOICE_POS"] == 2


# =============================================================================
# SELLER DENIED ADMIN OPERATIONS: 403
# =============================================================================


class TestSellerDenied:

    def test_cannot_create_product(self, client, seller):
        resp = client.post(
            "/api/products",
            json={"sku": "X-1", "name": "X", "price_cents": 1000},
            headers=user_headers(seller),
        )
        assert resp.status_code == 403

    def test_cannot_receive_purchase(self, client, seller, supplier, product):
        resp = client.post(
            "/api/purchases",
            json={"supplier_id": supplier.id, "items": [{"product_id": product.id, "quantity": 1, "unit_cost_cents": 1}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 403
        assert inventory_service.get_stock(product.id) == 10

    def test_cannot_read_sales_summary(self, client, seller):
        resp = client.get("/api/reports/summary", headers=user_headers(seller))
        assert resp.status_code == 403

    def test_cannot_see_other_seller_performance(self, client, seller, other_seller):
        resp = client.get(f"/api/reports/sellers/{other_seller.id}/performance", headers=user_headers(seller))
        assert resp.status_code == 403

    def test_sees_own_performance(self, client, seller):
        resp = client.get(f"/api/reports/sellers/{seller.id}/performance", headers=user_headers(seller))
        assert resp.status_code == 200
        assert resp.json["seller_id"] == seller.id

    def test_cannot_cancel_invoice(self, client, seller, product, make_invoice):
        invoice = make_invoice((product, 1))
        resp = client.post(
            f"/api/invoices/{invoice.id}/status",
            json={"status": "cancelled", "reason": "Error"},
            headers=user_headers(seller),
        )
        assert resp.status_code == 403


# =============================================================================
# CATALOG
# =============================================================================


class TestProducts:

    def test_admin_creates_product_with_default_tax(self, client, admin):
        resp = client.post(
            "/api/products",
            json={"sku": "CAF-500", "name": "Cafe 500g", "price_cents": 11900, "stock": 4},
            headers=user_headers(admin),
        )
        assert resp.status_code == 201
        assert resp.json["tax_rate_bps"] == 1900
        assert resp.json["stock"] == 4

        movements = client.get(f"/api/products/{resp.json['id']}/movements", headers=user_headers(admin))
        assert [m["movement_type"] for m in movements.json["movements"]] == ["INITIAL"]

    def test_duplicate_sku_conflict(self, client, admin, product):
        resp = client.post(
            "/api/products",
            json={"sku": product.sku, "name": "Otro", "price_cents": 100},
            headers=user_headers(admin),
        )
        assert resp.status_code == 409

    def test_stock_cannot_be_patched(self, client, admin, product):
        resp = client.patch(f"/api/products/{product.id}", json={"stock": 99}, headers=user_headers(admin))
        assert resp.status_code == 400
        assert inventory_service.get_stock(product.id) == 10


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckout:

    def test_commit_sale(self, client, seller, customer, product):
        resp = client.post(
            "/api/invoices",
            json={
                "customer_id": customer.id,
                "items": [{"product_id": product.id, "quantity": 2, "discount_percentage": 10}],
                "total_cents": 21420,
            },
            headers=user_headers(seller),
        )
        assert resp.status_code == 201
        invoice = resp.json["invoice"]
        assert invoice["seller_id"] == seller.id
        assert invoice["total_cents"] == 21420
        assert invoice["items"][0]["discount_percentage"] == 10.0
        assert inventory_service.get_stock(product.id) == 8

    def test_insufficient_stock_is_409(self, client, seller, customer, product):
        resp = client.post(
            "/api/invoices",
            json={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": 11}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 409
        assert resp.json["details"]["items"][0]["available_quantity"] == 10
        assert inventory_service.get_stock(product.id) == 10

    def test_total_mismatch_is_400(self, client, seller, customer, product):
        resp = client.post(
            "/api/invoices",
            json={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": 1}], "total_cents": 1},
            headers=user_headers(seller),
        )
        assert resp.status_code == 400

    def test_quote(self, client, seller, product):
        resp = client.post(
            "/api/invoices/quote",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 200
        assert resp.json["total_cents"] == 11900
        assert resp.json["tax_cents"] == 1900

    def test_unknown_invoice(self, client, seller, db_session):
        resp = client.get("/api/invoices/999999", headers=user_headers(seller))
        assert resp.status_code == 404

    def test_seller_sees_only_own_invoices(self, client, seller, other_seller, product, make_invoice):
        theirs = make_invoice((product, 1), seller_user=other_seller)

        resp = client.get("/api/invoices", headers=user_headers(seller))
        assert resp.status_code == 200
        assert resp.json["count"] == 0

        resp = client.get(f"/api/invoices/{theirs.id}", headers=user_headers(seller))
        assert resp.status_code == 404

        resp = client.get(f"/api/invoices/{theirs.id}/dian-xml", headers=user_headers(seller))
        assert resp.status_code == 404

        resp = client.get("/api/invoices", headers=user_headers(other_seller))
        assert resp.json["count"] == 1

    def test_seller_cannot_credit_sale_to_other_seller(self, client, seller, other_seller, customer, product):
        resp = client.post(
            "/api/invoices",
            json={
                "customer_id": customer.id,
                "seller_id": other_seller.id,
                "items": [{"product_id": product.id, "quantity": 1}],
            },
            headers=user_headers(seller),
        )
        assert resp.status_code == 403
        assert inventory_service.get_stock(product.id) == 10

    def test_dian_xml_unsigned(self, client, seller, product, make_invoice):
        invoice = make_invoice((product, 1))
        resp = client.get(f"/api/invoices/{invoice.id}/dian-xml", headers=user_headers(seller))
        assert resp.status_code == 200
        assert resp.mimetype == "application/xml"
        assert resp.headers["X-Document-Signed"] == "false"
        assert invoice.number in resp.headers["Content-Disposition"]


# =============================================================================
# RETURNS
# =============================================================================


class TestReturnsApi:

    def test_return_flow(self, client, seller, product, make_invoice):
        invoice = make_invoice((product, 5))

        resp = client.post(
            f"/api/invoices/{invoice.id}/returns",
            json={"reason": "Defectuoso", "items": [{"product_id": product.id, "quantity": 6}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 409

        resp = client.post(
            f"/api/invoices/{invoice.id}/returns",
            json={"reason": "Defectuoso", "items": [{"product_id": product.id, "quantity": 2}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 201
        credit_note = resp.json["credit_note"]
        assert credit_note["total_cents"] == 23800

        resp = client.get(f"/api/invoices/{invoice.id}/returnable", headers=user_headers(seller))
        assert resp.json["items"][0]["returnable_quantity"] == 3

        resp = client.get(f"/api/credit-notes/{credit_note['id']}", headers=user_headers(seller))
        assert resp.status_code == 200

    def test_missing_reason_is_400(self, client, seller, product, make_invoice):
        invoice = make_invoice((product, 1))
        resp = client.post(
            f"/api/invoices/{invoice.id}/returns",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 400

    def test_unknown_invoice_is_404(self, client, seller, db_session):
        resp = client.post(
            "/api/invoices/999999/returns",
            json={"reason": "x", "items": [{"product_id": 1, "quantity": 1}]},
            headers=user_headers(seller),
        )
        assert resp.status_code == 404


# =============================================================================
# SALES ORDERS
# =============================================================================


class TestSalesOrdersApi:

    def _create(self, client, user, customer, product, quantity=2):
        resp = client.post(
            "/api/sales-orders",
            json={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": quantity}]},
            headers=user_headers(user),
        )
        assert resp.status_code == 201
        return resp.json["sales_order"]

    def test_execute_by_owner(self, client, seller, customer, product):
        order = self._create(client, seller, customer, product)
        resp = client.post(f"/api/sales-orders/{order['id']}/execute", headers=user_headers(seller))
        assert resp.status_code == 200
        assert resp.json["sales_order"]["status"] == "executed"
        assert resp.json["sales_order"]["invoice_id"] is not None

        again = client.post(f"/api/sales-orders/{order['id']}/execute", headers=user_headers(seller))
        assert again.status_code == 409

    def test_other_seller_cannot_execute_or_see(self, client, seller, other_seller, customer, product):
        order = self._create(client, seller, customer, product)

        resp = client.post(f"/api/sales-orders/{order['id']}/execute", headers=user_headers(other_seller))
        assert resp.status_code == 403

        resp = client.get(f"/api/sales-orders/{order['id']}", headers=user_headers(other_seller))
        assert resp.status_code == 404

    def test_seller_cannot_cancel(self, client, seller, customer, product):
        order = self._create(client, seller, customer, product)
        resp = client.post(f"/api/sales-orders/{order['id']}/cancel", headers=user_headers(seller))
        assert resp.status_code == 403

    def test_admin_cancels(self, client, admin, seller, customer, product):
        order = self._create(client, seller, customer, product)
        resp = client.post(f"/api/sales-orders/{order['id']}/cancel", headers=user_headers(admin))
        assert resp.status_code == 200
        assert resp.json["sales_order"]["status"] == "cancelled"

    def test_insufficient_stock_on_execute(self, client, seller, customer, make_product):
        p = make_product(stock=1)
        order = self._create(client, seller, customer, p, quantity=2)
        resp = client.post(f"/api/sales-orders/{order['id']}/execute", headers=user_headers(seller))
        assert resp.status_code == 409

        resp = client.get(f"/api/sales-orders/{order['id']}", headers=user_headers(seller))
        assert resp.json["sales_order"]["status"] == "pending"


# =============================================================================
# PURCHASES & EXPENSES
# =============================================================================


class TestBackOffice:

    def test_admin_receives_purchase(self, client, admin, supplier, product):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "items": [{"product_id": product.id, "quantity": 6, "unit_cost_cents": 7000}],
            },
            headers=user_headers(admin),
        )
        assert resp.status_code == 201
        assert resp.json["purchase"]["total_cents"] == 42000
        assert resp.json["purchase"]["buyer_id"] == admin.id
        assert inventory_service.get_stock(product.id) == 16

    def test_expense_category_validated(self, client, admin):
        resp = client.post(
            "/api/expenses",
            json={"category": "yate", "amount_cents": 1000},
            headers=user_headers(admin),
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/expenses",
            json={"category": "viaticos", "amount_cents": 1000, "description": "Taxi"},
            headers=user_headers(admin),
        )
        assert resp.status_code == 201

        listing = client.get("/api/expenses", headers=user_headers(admin))
        assert listing.json["total_cents"] == 1000

    def test_customer_duplicate_nit(self, client, seller, customer):
        resp = client.post(
            "/api/customers",
            json={"name": "Otro", "nit_cedula": customer.nit_cedula},
            headers=user_headers(seller),
        )
        assert resp.status_code == 409
