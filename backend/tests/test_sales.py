"""
Sale commit tests.

Verifies:
- A committed sale writes the invoice, its items and the stock decrements together
- Any failure (validation, short stock, fault midway) leaves nothing behind
- Invoice status transitions and cancellation stock restore
"""

import pytest

from konta.extensions import db
from konta.models import Invoice, Product, StockMovement
from konta.services import inventory_service, return_service, sales_service
from konta.services.inventory_service import InsufficientStockError
from konta.services.sales_service import (
    InvoiceNotFoundError,
    InvoiceStateError,
    SaleError,
    SalePermissionError,
)
from konta.validation import ForbiddenError


def _stock(product_id):
    return inventory_service.get_stock(product_id)


# =============================================================================
# COMMIT
# =============================================================================


class TestCommitSale:

    def test_commit_writes_invoice_items_and_stock(self, customer, seller, make_product):
        coffee = make_product(price_cents=11900, stock=10)
        sugar = make_product(price_cents=10500, stock=5, tax_rate_bps=500)

        invoice = sales_service.commit_sale(
            customer_id=customer.id,
            seller_id=seller.id,
            items=[
                {"product_id": coffee.id, "quantity": 2},
                {"product_id": sugar.id, "quantity": 1},
            ],
            created_by_user_id=seller.id,
        )

        assert invoice.number == "POS-000001"
        assert invoice.status == "paid"
        assert invoice.total_cents == 2 * 11900 + 10500
        assert invoice.tax_cents == 2 * 1900 + 500
        assert invoice.subtotal_cents + invoice.tax_cents == invoice.total_cents
        assert [item.position for item in invoice.items] == [1, 2]

        assert _stock(coffee.id) == 8
        assert _stock(sugar.id) == 4

        movements = db.session.query(StockMovement).filter_by(movement_type="SALE").all()
        assert sorted((m.product_id, m.quantity_delta) for m in movements) == [(coffee.id, -2), (sugar.id, -1)]
        assert all(m.reference_id == invoice.id for m in movements)

    def test_discount_and_price_override(self, customer, seller, product):
        invoice = sales_service.commit_sale(
            customer_id=customer.id,
            seller_id=seller.id,
            items=[{"product_id": product.id, "quantity": 2, "unit_price_cents": 10000, "discount_percentage": 10}],
        )
        item = invoice.items[0]
        assert item.unit_price_cents == 10000
        assert item.discount_bps == 1000
        assert item.line_total_cents == 18000
        assert invoice.total_cents == 18000

    def test_duplicate_product_lines_decrement_once_per_product(self, customer, seller, make_product):
        p = make_product(stock=3)
        sales_service.commit_sale(
            customer_id=customer.id,
            seller_id=seller.id,
            items=[{"product_id": p.id, "quantity": 1}, {"product_id": p.id, "quantity": 2}],
        )
        assert _stock(p.id) == 0

    def test_normal_invoice_uses_its_own_sequence(self, customer, seller, product):
        pos = sales_service.commit_sale(
            customer_id=customer.id, seller_id=seller.id,
            items=[{"product_id": product.id, "quantity": 1}],
        )
        normal = sales_service.commit_sale(
            customer_id=customer.id, seller_id=seller.id, invoice_type="NORMAL",
            items=[{"product_id": product.id, "quantity": 1}],
        )
        assert pos.number == "POS-000001"
        assert normal.number == "FV-000001"

    def test_total_mismatch_rejected(self, customer, seller, product):
        with pytest.raises(SaleError) as exc:
            sales_service.commit_sale(
                customer_id=customer.id,
                seller_id=seller.id,
                items=[{"product_id": product.id, "quantity": 1}],
                expected_total_cents=100,
            )
        assert exc.value.details["computed_total_cents"] == 11900
        assert db.session.query(Invoice).count() == 0
        assert _stock(product.id) == 10

    @pytest.mark.parametrize("items", [
        [],
        None,
        [{"product_id": 1, "quantity": 0}],
        [{"product_id": 1, "quantity": 1.5}],
        [{"product_id": 1, "quantity": 1, "discount_percentage": 120}],
    ])
    def test_invalid_items_rejected(self, customer, seller, items):
        with pytest.raises(SaleError):
            sales_service.commit_sale(customer_id=customer.id, seller_id=seller.id, items=items)

    def test_unknown_customer_rejected(self, seller, product):
        with pytest.raises(SaleError):
            sales_service.commit_sale(
                customer_id=999999, seller_id=seller.id,
                items=[{"product_id": product.id, "quantity": 1}],
            )
        assert _stock(product.id) == 10

    def test_inactive_product_rejected(self, customer, seller, make_product):
        p = make_product(is_active=False)
        with pytest.raises(SaleError):
            sales_service.commit_sale(
                customer_id=customer.id, seller_id=seller.id,
                items=[{"product_id": p.id, "quantity": 1}],
            )


class TestInsufficientStock:

    def test_nothing_written_and_every_short_product_listed(self, customer, seller, make_product):
        plenty = make_product(stock=10)
        low_a = make_product(stock=1)
        low_b = make_product(stock=0)

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.commit_sale(
                customer_id=customer.id,
                seller_id=seller.id,
                items=[
                    {"product_id": plenty.id, "quantity": 2},
                    {"product_id": low_a.id, "quantity": 2},
                    {"product_id": low_b.id, "quantity": 1},
                ],
            )

        short = {item["product_id"]: item for item in exc.value.details["items"]}
        assert set(short) == {low_a.id, low_b.id}
        assert short[low_a.id]["available_quantity"] == 1
        assert short[low_a.id]["requested_quantity"] == 2

        assert db.session.query(Invoice).count() == 0
        assert _stock(plenty.id) == 10
        assert _stock(low_a.id) == 1

    def test_failed_sale_does_not_consume_a_number(self, customer, seller, make_product):
        p = make_product(stock=1)
        with pytest.raises(InsufficientStockError):
            sales_service.commit_sale(
                customer_id=customer.id, seller_id=seller.id,
                items=[{"product_id": p.id, "quantity": 5}],
            )
        invoice = sales_service.commit_sale(
            customer_id=customer.id, seller_id=seller.id,
            items=[{"product_id": p.id, "quantity": 1}],
        )
        assert invoice.number == "POS-000001"


class TestFaultInjection:

    def test_failure_after_first_decrement_rolls_back_everything(self, monkeypatch, customer, seller, make_product):
        first = make_product(stock=10)
        second = make_product(stock=10)

        real_decrement = inventory_service.decrement_stock
        calls = []

        def flaky_decrement(product_id, quantity, **kwargs):
            calls.append(product_id)
            if len(calls) == 2:
                raise RuntimeError("simulated crash between stock updates")
            return real_decrement(product_id, quantity, **kwargs)

        monkeypatch.setattr(inventory_service, "decrement_stock", flaky_decrement)

        with pytest.raises(RuntimeError):
            sales_service.commit_sale(
                customer_id=customer.id,
                seller_id=seller.id,
                items=[{"product_id": first.id, "quantity": 3}, {"product_id": second.id, "quantity": 4}],
            )

        assert len(calls) == 2
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(StockMovement).filter_by(movement_type="SALE").count() == 0
        assert _stock(first.id) == 10
        assert _stock(second.id) == 10


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestInvoiceStatus:

    def test_draft_to_paid_to_reported(self, admin, product, make_invoice):
        invoice = make_invoice((product, 1), status="draft")
        assert invoice.status == "draft"

        invoice = sales_service.update_invoice_status(invoice.id, "paid", acting_user=admin)
        assert invoice.status == "paid"

        invoice = sales_service.update_invoice_status(invoice.id, "reported_dian", acting_user=admin)
        assert invoice.status == "reported_dian"

    def test_reported_invoice_cannot_be_cancelled(self, admin, product, make_invoice):
        invoice = make_invoice((product, 1))
        sales_service.update_invoice_status(invoice.id, "reported_dian", acting_user=admin)

        with pytest.raises(InvoiceStateError):
            sales_service.update_invoice_status(invoice.id, "cancelled", acting_user=admin, reason="error")

    def test_paid_cannot_go_back_to_draft(self, admin, product, make_invoice):
        invoice = make_invoice((product, 1))
        with pytest.raises(InvoiceStateError):
            sales_service.update_invoice_status(invoice.id, "draft", acting_user=admin)

    def test_only_admin_cancels(self, seller, product, make_invoice):
        invoice = make_invoice((product, 1))
        with pytest.raises(ForbiddenError):
            sales_service.update_invoice_status(invoice.id, "cancelled", acting_user=seller, reason="error")

    def test_cancel_requires_reason(self, admin, product, make_invoice):
        invoice = make_invoice((product, 1))
        with pytest.raises(SaleError):
            sales_service.update_invoice_status(invoice.id, "cancelled", acting_user=admin, reason="  ")

    def test_cancel_restores_outstanding_stock(self, admin, product, make_invoice):
        invoice = make_invoice((product, 5))
        return_service.process_return(
            invoice.id, [{"product_id": product.id, "quantity": 2}], "Producto defectuoso", admin.id,
        )
        assert _stock(product.id) == 7

        invoice = sales_service.update_invoice_status(
            invoice.id, "cancelled", acting_user=admin, reason="Venta duplicada",
        )

        assert invoice.status == "cancelled"
        assert invoice.cancel_reason == "Venta duplicada"
        assert invoice.cancelled_at is not None
        assert db.session.get(Product, product.id).stock == 10


class TestQuote:

    def test_quote_writes_nothing_and_reports_shortages(self, make_product):
        p = make_product(stock=1)
        quote = sales_service.quote_sale([{"product_id": p.id, "quantity": 3, "discount_percentage": "50"}])
        assert quote["total_cents"] == 17850
        assert quote["shortages"] == [{"product_id": p.id, "requested_quantity": 3, "available_quantity": 1}]
        assert db.session.query(Invoice).count() == 0


class TestInvoiceVisibility:

    def test_sellers_only_see_their_invoices(self, admin, seller, other_seller, product, make_invoice):
        mine = make_invoice((product, 1), seller_user=seller)
        theirs = make_invoice((product, 1), seller_user=other_seller)

        seen = sales_service.list_invoices(acting_user=seller)
        assert [i.id for i in seen] == [mine.id]

        # seller_id filter is ignored for sellers
        seen = sales_service.list_invoices(acting_user=seller, seller_id=other_seller.id)
        assert [i.id for i in seen] == [mine.id]

        assert len(sales_service.list_invoices(acting_user=admin)) == 2
        assert len(sales_service.list_invoices(acting_user=admin, seller_id=other_seller.id)) == 1

        with pytest.raises(InvoiceNotFoundError):
            sales_service.get_invoice(theirs.id, acting_user=seller)
        assert sales_service.get_invoice(theirs.id, acting_user=admin).id == theirs.id

    def test_seller_cannot_credit_sale_to_another_seller(self, customer, seller, other_seller, product):
        with pytest.raises(SalePermissionError):
            sales_service.commit_sale(
                customer_id=customer.id,
                seller_id=other_seller.id,
                items=[{"product_id": product.id, "quantity": 1}],
                created_by_user_id=seller.id,
                acting_user=seller,
            )
        assert db.session.query(Invoice).count() == 0
        assert _stock(product.id) == 10

    def test_admin_can_credit_sale_to_a_seller(self, customer, admin, seller, product):
        invoice = sales_service.commit_sale(
            customer_id=customer.id,
            seller_id=seller.id,
            items=[{"product_id": product.id, "quantity": 1}],
            created_by_user_id=admin.id,
            acting_user=admin,
        )
        assert invoice.seller_id == seller.id
