"""
Sales order (preventa) lifecycle tests.

Verifies:
- pending -> executed creates exactly one invoice and decrements stock
- pending -> cancelled is admin-only
- Terminal orders cannot change again
- A failed execution leaves the order pending and stock untouched
"""

import pytest

from konta.extensions import db
from konta.models import Invoice, Product
from konta.services import inventory_service, sales_order_service
from konta.services.inventory_service import InsufficientStockError
from konta.services.sales_order_service import (
    SalesOrderPermissionError,
    SalesOrderStateError,
)


def _order(customer, acting_user, product, quantity=2, seller_id=None, **extra):
    return sales_order_service.create_sales_order(
        customer_id=customer.id,
        seller_id=seller_id,
        items=[{"product_id": product.id, "quantity": quantity, **extra}],
        acting_user=acting_user,
    )


class TestCreate:

    def test_seller_creates_own_order(self, customer, seller, product):
        order = _order(customer, seller, product, quantity=3, discount_percentage=10)

        assert order.number == "PV-000001"
        assert order.status == "pending"
        assert order.seller_id == seller.id
        assert order.total_cents == 32130
        # Creating an order reserves nothing
        assert inventory_service.get_stock(product.id) == 10

    def test_seller_cannot_assign_another_seller(self, customer, seller, other_seller, product):
        with pytest.raises(SalesOrderPermissionError):
            _order(customer, seller, product, seller_id=other_seller.id)

    def test_admin_assigns_seller(self, customer, admin, seller, product):
        order = _order(customer, admin, product, seller_id=seller.id)
        assert order.seller_id == seller.id
        assert order.created_by_user_id == admin.id


class TestExecute:

    def test_assigned_seller_executes(self, customer, seller, product):
        order = _order(customer, seller, product, quantity=2)

        order = sales_order_service.execute_sales_order(order.id, acting_user=seller)

        assert order.status == "executed"
        assert order.executed_at is not None
        invoice = db.session.get(Invoice, order.invoice_id)
        assert invoice.sales_order_id == order.id
        assert invoice.invoice_type == "POS"
        assert invoice.total_cents == order.total_cents
        assert inventory_service.get_stock(product.id) == 8

    def test_invoice_keeps_order_prices(self, customer, seller, product):
        order = _order(customer, seller, product, quantity=1)
        db.session.get(Product, product.id).price_cents = 99900
        db.session.commit()

        order = sales_order_service.execute_sales_order(order.id, acting_user=seller)
        assert db.session.get(Invoice, order.invoice_id).total_cents == 11900

    def test_admin_executes_any_order(self, customer, admin, seller, product):
        order = _order(customer, seller, product)
        order = sales_order_service.execute_sales_order(order.id, acting_user=admin)
        assert order.status == "executed"

    def test_other_seller_cannot_execute(self, customer, seller, other_seller, product):
        order = _order(customer, seller, product)
        with pytest.raises(SalesOrderPermissionError):
            sales_order_service.execute_sales_order(order.id, acting_user=other_seller)

    def test_cannot_execute_twice(self, customer, seller, product):
        order = _order(customer, seller, product)
        sales_order_service.execute_sales_order(order.id, acting_user=seller)

        with pytest.raises(SalesOrderStateError):
            sales_order_service.execute_sales_order(order.id, acting_user=seller)
        assert db.session.query(Invoice).count() == 1
        assert inventory_service.get_stock(product.id) == 8

    def test_insufficient_stock_keeps_order_pending(self, customer, seller, make_product):
        p = make_product(stock=5)
        order = _order(customer, seller, p, quantity=4)
        # Someone else sells in between
        sales_order_service.execute_sales_order(_order(customer, seller, p, quantity=3).id, acting_user=seller)

        with pytest.raises(InsufficientStockError):
            sales_order_service.execute_sales_order(order.id, acting_user=seller)

        order = sales_order_service.get_sales_order(order.id)
        assert order.status == "pending"
        assert order.invoice_id is None
        assert db.session.query(Invoice).count() == 1
        assert inventory_service.get_stock(p.id) == 2


class TestCancel:

    def test_admin_cancels_pending(self, customer, admin, seller, product):
        order = _order(customer, seller, product)
        order = sales_order_service.cancel_sales_order(order.id, acting_user=admin)

        assert order.status == "cancelled"
        assert order.cancelled_by_user_id == admin.id
        assert order.cancelled_at is not None

    def test_seller_cannot_cancel(self, customer, seller, product):
        order = _order(customer, seller, product)
        with pytest.raises(SalesOrderPermissionError):
            sales_order_service.cancel_sales_order(order.id, acting_user=seller)

    def test_cancelled_order_cannot_execute(self, customer, admin, seller, product):
        order = _order(customer, seller, product)
        sales_order_service.cancel_sales_order(order.id, acting_user=admin)

        with pytest.raises(SalesOrderStateError):
            sales_order_service.execute_sales_order(order.id, acting_user=admin)
        assert db.session.query(Invoice).count() == 0

    def test_executed_order_cannot_be_cancelled(self, customer, admin, seller, product):
        order = _order(customer, seller, product)
        sales_order_service.execute_sales_order(order.id, acting_user=seller)

        with pytest.raises(SalesOrderStateError):
            sales_order_service.cancel_sales_order(order.id, acting_user=admin)


class TestList:

    def test_sellers_only_see_their_orders(self, customer, admin, seller, other_seller, product):
        mine = _order(customer, seller, product)
        _order(customer, other_seller, product)

        seen = sales_order_service.list_sales_orders(acting_user=seller)
        assert [o.id for o in seen] == [mine.id]

        # seller_id filter is ignored for sellers
        seen = sales_order_service.list_sales_orders(acting_user=seller, seller_id=other_seller.id)
        assert [o.id for o in seen] == [mine.id]

        assert len(sales_order_service.list_sales_orders(acting_user=admin)) == 2
        assert len(sales_order_service.list_sales_orders(acting_user=admin, seller_id=other_seller.id)) == 1
