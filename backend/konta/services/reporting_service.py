# Overview: Read-only sales, seller and operating-result reports.

from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy import func

from ..extensions import db
from ..models import CreditNote, Invoice, User
from ..models.invoices import INVOICE_STATUS_PAID, INVOICE_STATUS_REPORTED
from ..time_utils import day_range, month_start, previous_month_start, utcnow
from . import expense_service

# Invoices that count as revenue. Drafts are not sales yet; cancelled ones were undone.
REVENUE_STATUSES = (INVOICE_STATUS_PAID, INVOICE_STATUS_REPORTED)


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _revenue_invoices(start: datetime | None = None, end: datetime | None = None):
    q = db.session.query(Invoice).filter(Invoice.status.in_(REVENUE_STATUSES))
    if start is not None:
        q = q.filter(Invoice.created_at >= start)
    if end is not None:
        q = q.filter(Invoice.created_at < end)
    return q


def sales_summary(date_from: date | None = None, date_to: date | None = None) -> dict:
    """
    Gross sales, credit notes and operating result for a date range.

    Credit notes are attributed to the day they were issued, not to the day
    of the invoice they reverse.
    """
    if date_from and date_to and date_from > date_to:
        raise ReportError("date_from must be on or before date_to")
    start, end = day_range(date_from, date_to)

    totals = _revenue_invoices(start, end).with_entities(
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.total_cents), 0),
        func.coalesce(func.sum(Invoice.tax_cents), 0),
    ).one()
    invoice_count, gross, tax = (int(v or 0) for v in totals)

    cn_q = (
        db.session.query(func.coalesce(func.sum(CreditNote.total_cents), 0))
        .join(Invoice, Invoice.id == CreditNote.invoice_id)
        .filter(Invoice.status.in_(REVENUE_STATUSES))
    )
    if start is not None:
        cn_q = cn_q.filter(CreditNote.created_at >= start)
    if end is not None:
        cn_q = cn_q.filter(CreditNote.created_at < end)
    credit_notes = int(cn_q.scalar() or 0)

    expenses = expense_service.total_expenses(date_from, date_to)
    net_revenue = gross - credit_notes

    return {
        "date_from": date_from.isoformat() if date_from else None,
        "date_to": date_to.isoformat() if date_to else None,
        "invoice_count": invoice_count,
        "gross_sales_cents": gross,
        "tax_cents": tax,
        "net_of_tax_cents": gross - tax,
        "credit_notes_cents": credit_notes,
        "net_revenue_cents": net_revenue,
        "expenses_cents": expenses,
        "operating_result_cents": net_revenue - expenses,
    }


def sales_by_seller(date_from: date | None = None) -> list[dict]:
    """Per-seller totals, highest total sales first."""
    start = datetime.combine(date_from, time.min) if date_from else None
    rows = (
        _revenue_invoices(start)
        .join(User, User.id == Invoice.seller_id)
        .with_entities(
            User.id,
            User.full_name,
            User.email,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_cents), 0),
        )
        .group_by(User.id, User.full_name, User.email)
        .all()
    )

    result = []
    for seller_id, full_name, email, count, total in rows:
        count = int(count or 0)
        total = int(total or 0)
        result.append({
            "seller_id": seller_id,
            "seller_name": full_name,
            "seller_email": email,
            "total_sales_cents": total,
            "total_orders": count,
            "avg_order_value_cents": total // count if count else 0,
        })
    result.sort(key=lambda r: (-r["total_sales_cents"], r["seller_id"]))
    return result


def _sum_for_seller(seller_id: int, start: datetime | None, end: datetime | None) -> tuple[int, int]:
    count, total = (
        _revenue_invoices(start, end)
        .filter(Invoice.seller_id == seller_id)
        .with_entities(func.count(Invoice.id), func.coalesce(func.sum(Invoice.total_cents), 0))
        .one()
    )
    return int(count or 0), int(total or 0)


def seller_performance(seller_id: int, today: date | None = None) -> dict:
    """
    All-time, this-month and last-month sales of one seller.

    Growth is the percentage change from last month to this month; with no
    sales last month it is reported as 100.
    """
    seller = db.session.get(User, seller_id)
    if seller is None:
        raise ReportError(f"Seller {seller_id} not found")

    today = today or utcnow().date()
    this_month = datetime.combine(month_start(today), time.min)
    last_month = datetime.combine(previous_month_start(today), time.min)

    total_orders, total_sales = _sum_for_seller(seller_id, None, None)
    this_month_orders, this_month_sales = _sum_for_seller(seller_id, this_month, None)
    _, last_month_sales = _sum_for_seller(seller_id, last_month, this_month)

    if last_month_sales == 0:
        growth = 100.0 if this_month_sales else 0.0
    else:
        growth = round((this_month_sales - last_month_sales) * 100 / last_month_sales, 2)

    return {
        "seller_id": seller.id,
        "seller_name": seller.full_name,
        "total_sales_cents": total_sales,
        "total_orders": total_orders,
        "avg_order_cents": total_sales // total_orders if total_orders else 0,
        "this_month_sales_cents": this_month_sales,
        "this_month_orders": this_month_orders,
        "last_month_sales_cents": last_month_sales,
        "growth_percent": growth,
    }
