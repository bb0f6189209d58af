"""
Sales order ("preventa") service

LIFECYCLE:
    pending --execute--> executed   (creates exactly one invoice)
    pending --cancel---> cancelled
Both outcomes are terminal. Creating an order reserves nothing; stock is
only checked and decremented when the order is executed.

PERMISSIONS:
- Admins and sellers can create orders. A seller always owns the orders
  they create; admins may assign any active seller.
- Executing requires admin or the assigned seller.
- Cancelling is admin-only.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import SalesOrder, SalesOrderItem, User
from ..models.invoices import INVOICE_TYPE_POS
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_EXECUTED,
    ORDER_STATUS_PENDING,
)
from ..time_utils import day_range, utcnow
from ..validation import ConflictError, ForbiddenError, NotFoundError, ValidationError, coerce_int
from .concurrency import lock_for_update, run_atomic
from .document_service import DOC_SALES_ORDER, next_document_number
from .sales_service import (
    PricedLine,
    _load_products,
    _validate_parties,
    create_invoice_locked,
    parse_sale_items,
    price_items,
)


class SalesOrderError(ValidationError):
    pass


class SalesOrderNotFoundError(NotFoundError):
    pass


class SalesOrderStateError(ConflictError):
    """Raised when an order is not pending anymore."""


class SalesOrderPermissionError(ForbiddenError):
    pass


def _require_pending(order: SalesOrder, action: str) -> None:
    if order.status != ORDER_STATUS_PENDING:
        raise SalesOrderStateError(
            f"Cannot {action} sales order {order.number}: status is {order.status}",
            details={"status": order.status},
        )


def create_sales_order(
    *,
    customer_id: int,
    seller_id: int | None,
    items,
    acting_user: User,
    notes: str | None = None,
) -> SalesOrder:
    """
    Create a pending sales order with priced items.

    Sellers cannot create orders on behalf of someone else; ``seller_id``
    defaults to the acting user.
    """
    if seller_id is None:
        seller_id = acting_user.id
    if not acting_user.is_admin and coerce_int(seller_id, "seller_id") != acting_user.id:
        raise SalesOrderPermissionError("Sellers can only create their own sales orders")

    parsed = parse_sale_items(items)

    def _op() -> SalesOrder:
        customer, seller = _validate_parties(customer_id, seller_id)
        lines = price_items(parsed)

        order = SalesOrder(
            number=next_document_number(DOC_SALES_ORDER),
            customer_id=customer.id,
            seller_id=seller.id,
            created_by_user_id=acting_user.id,
            status=ORDER_STATUS_PENDING,
            total_cents=sum(line.line_total_cents for line in lines),
            notes=(notes or "").strip() or None,
            created_at=utcnow(),
        )
        for position, line in enumerate(lines, start=1):
            order.items.append(SalesOrderItem(
                position=position,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_bps=line.discount_bps,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(order)
        db.session.flush()
        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Sales order %s created for seller %s: total=%s",
        order.number, order.seller_id, order.total_cents,
    )
    return order


def execute_sales_order(order_id: int, *, acting_user: User) -> SalesOrder:
    """
    Turn a pending order into a POS invoice.

    Invoice creation, stock decrements and the status change commit
    together. On insufficient stock nothing changes and the order stays
    pending.
    """
    def _op() -> SalesOrder:
        order = lock_for_update(db.session.query(SalesOrder).filter_by(id=order_id)).first()
        if order is None:
            raise SalesOrderNotFoundError(f"Sales order {order_id} not found")
        if not acting_user.is_admin and order.seller_id != acting_user.id:
            raise SalesOrderPermissionError("Only an administrator or the assigned seller can execute this order")
        _require_pending(order, "execute")

        products = _load_products(item.product_id for item in order.items)
        lines = [
            PricedLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_bps=item.discount_bps,
                tax_rate_bps=products[item.product_id].tax_rate_bps,
                line_total_cents=item.line_total_cents,
            )
            for item in order.items
        ]

        invoice = create_invoice_locked(
            customer=order.customer,
            seller=order.seller,
            lines=lines,
            invoice_type=INVOICE_TYPE_POS,
            created_by_user_id=acting_user.id,
            sales_order_id=order.id,
        )

        order.status = ORDER_STATUS_EXECUTED
        order.invoice_id = invoice.id
        order.executed_at = utcnow()
        db.session.flush()
        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Sales order %s executed by user %s as invoice %s",
        order.number, acting_user.id, order.invoice_id,
    )
    return order


def cancel_sales_order(order_id: int, *, acting_user: User) -> SalesOrder:
    if not acting_user.is_admin:
        raise SalesOrderPermissionError("Only administrators can cancel sales orders")

    def _op() -> SalesOrder:
        order = lock_for_update(db.session.query(SalesOrder).filter_by(id=order_id)).first()
        if order is None:
            raise SalesOrderNotFoundError(f"Sales order {order_id} not found")
        _require_pending(order, "cancel")

        order.status = ORDER_STATUS_CANCELLED
        order.cancelled_at = utcnow()
        order.cancelled_by_user_id = acting_user.id
        db.session.flush()
        return order

    order = run_atomic(_op)
    current_app.logger.info("Sales order %s cancelled by user %s", order.number, acting_user.id)
    return order


def get_sales_order(order_id: int) -> SalesOrder:
    order = db.session.get(SalesOrder, order_id)
    if order is None:
        raise SalesOrderNotFoundError(f"Sales order {order_id} not found")
    return order


def list_sales_orders(
    *,
    acting_user: User,
    status: str | None = None,
    seller_id: int | None = None,
    date_from=None,
    date_to=None,
    limit: int = 200,
) -> list[SalesOrder]:
    """Sellers only ever see their own orders."""
    q = db.session.query(SalesOrder)
    if not acting_user.is_admin:
        q = q.filter(SalesOrder.seller_id == acting_user.id)
    elif seller_id:
        q = q.filter(SalesOrder.seller_id == seller_id)
    if status:
        q = q.filter(SalesOrder.status == status)
    start, end = day_range(date_from, date_to)
    if start is not None:
        q = q.filter(SalesOrder.created_at >= start)
    if end is not None:
        q = q.filter(SalesOrder.created_at < end)
    return q.order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc()).limit(limit).all()
