"""
Reporting tests.

Only paid and reported invoices count as revenue; credit notes are
subtracted on the day they were issued; expenses give the operating result.
"""

from datetime import date, datetime

import pytest

from konta.extensions import db
from konta.models import Invoice
from konta.services import expense_service, reporting_service, return_service, sales_service
from konta.services.reporting_service import ReportError


def _move_to(invoice, when: datetime):
    inv = db.session.get(Invoice, invoice.id)
    inv.created_at = when
    db.session.commit()
    return inv


class TestSalesSummary:

    def test_summary_counts_revenue_invoices_only(self, admin, product, make_invoice):
        a = make_invoice((product, 2))
        make_invoice((product, 1))
        make_invoice((product, 1), status="draft")
        cancelled = make_invoice((product, 1))
        sales_service.update_invoice_status(cancelled.id, "cancelled", acting_user=admin, reason="Error")

        return_service.process_return(a.id, [{"product_id": product.id, "quantity": 1}], "Devolucion", admin.id)
        expense_service.create_expense(category="arriendo", amount_cents=5000, created_by_user_id=admin.id)

        report = reporting_service.sales_summary()

        assert report["invoice_count"] == 2
        assert report["gross_sales_cents"] == 35700
        assert report["tax_cents"] == 5700
        assert report["net_of_tax_cents"] == 30000
        assert report["credit_notes_cents"] == 11900
        assert report["net_revenue_cents"] == 23800
        assert report["expenses_cents"] == 5000
        assert report["operating_result_cents"] == 18800

    def test_date_range_is_inclusive(self, product, make_invoice):
        old = make_invoice((product, 1))
        inside = make_invoice((product, 2))
        _move_to(old, datetime(2026, 1, 31, 23, 59))
        _move_to(inside, datetime(2026, 2, 28, 23, 59))

        report = reporting_service.sales_summary(date(2026, 2, 1), date(2026, 2, 28))
        assert report["invoice_count"] == 1
        assert report["gross_sales_cents"] == 23800

    def test_inverted_range_rejected(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.sales_summary(date(2026, 3, 1), date(2026, 2, 1))


class TestSalesBySeller:

    def test_sorted_by_total(self, seller, other_seller, product, make_invoice):
        make_invoice((product, 1), seller_user=seller)
        make_invoice((product, 1), seller_user=other_seller)
        make_invoice((product, 2), seller_user=other_seller)

        rows = reporting_service.sales_by_seller()

        assert [r["seller_id"] for r in rows] == [other_seller.id, seller.id]
        top = rows[0]
        assert top["total_sales_cents"] == 35700
        assert top["total_orders"] == 2
        assert top["avg_order_value_cents"] == 17850
        assert top["seller_name"] == other_seller.full_name


class TestSellerPerformance:

    def test_month_over_month_growth(self, seller, product, make_invoice):
        this_month = make_invoice((product, 1))
        last_month = make_invoice((product, 2))
        _move_to(this_month, datetime(2026, 6, 3, 10, 0))
        _move_to(last_month, datetime(2026, 5, 20, 10, 0))

        report = reporting_service.seller_performance(seller.id, today=date(2026, 6, 15))

        assert report["total_sales_cents"] == 35700
        assert report["total_orders"] == 2
        assert report["avg_order_cents"] == 17850
        assert report["this_month_sales_cents"] == 11900
        assert report["this_month_orders"] == 1
        assert report["last_month_sales_cents"] == 23800
        assert report["growth_percent"] == -50.0

    def test_growth_is_100_without_last_month_sales(self, seller, product, make_invoice):
        invoice = make_invoice((product, 1))
        _move_to(invoice, datetime(2026, 6, 3, 10, 0))

        report = reporting_service.seller_performance(seller.id, today=date(2026, 6, 15))
        assert report["growth_percent"] == 100.0

    def test_growth_is_zero_without_sales_in_either_month(self, seller, product, make_invoice):
        invoice = make_invoice((product, 1))
        _move_to(invoice, datetime(2026, 2, 3, 10, 0))

        report = reporting_service.seller_performance(seller.id, today=date(2026, 6, 15))
        assert report["total_sales_cents"] == 11900
        assert report["this_month_sales_cents"] == 0
        assert report["last_month_sales_cents"] == 0
        assert report["growth_percent"] == 0.0

    def test_january_compares_with_december(self, seller, product, make_invoice):
        december = make_invoice((product, 1))
        january = make_invoice((product, 3))
        _move_to(december, datetime(2025, 12, 10, 10, 0))
        _move_to(january, datetime(2026, 1, 5, 10, 0))

        report = reporting_service.seller_performance(seller.id, today=date(2026, 1, 20))
        assert report["last_month_sales_cents"] == 11900
        assert report["this_month_sales_cents"] == 35700
        assert report["growth_percent"] == 200.0

    def test_unknown_seller(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.seller_performance(999999)
