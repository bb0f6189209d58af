"""
Sale commit service

WHY: A sale is one all-or-nothing unit: invoice header, invoice items and
one stock decrement per product either all exist afterwards or none do.
POS checkout, normal invoices and executed sales orders all go through
create_invoice_locked, so there is exactly one way to create an invoice.

PRICING: unit prices are tax-inclusive. line_total = unit_price * quantity
* (1 - discount/100); invoice total = sum(line totals); the tax contained in
each line is extracted with that line's tax rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Product, User
from ..models.invoices import (
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_REPORTED,
    INVOICE_STATUSES,
    INVOICE_TYPE_NORMAL,
    INVOICE_TYPE_POS,
    INVOICE_TYPES,
)
from ..money import (
    MAX_DISCOUNT_BPS,
    line_total_cents,
    percent_to_bps,
    summarize_lines,
)
from ..time_utils import day_range, utcnow
from ..validation import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    coerce_int,
    coerce_non_negative_int,
    coerce_positive_int,
)
from . import inventory_service
from .concurrency import lock_for_update, run_atomic
from .document_service import DOC_INVOICE_NORMAL, DOC_INVOICE_POS, next_document_number


class SaleError(ValidationError):
    """Raised for invalid sale input; nothing is written."""


class InvoiceNotFoundError(NotFoundError):
    pass


class InvoiceStateError(ConflictError):
    """Raised for a status change the invoice lifecycle does not allow."""


class SalePermissionError(ForbiddenError):
    pass


# draft -> paid -> reported_dian; draft/paid -> cancelled
INVOICE_TRANSITIONS = {
    INVOICE_STATUS_DRAFT: {INVOICE_STATUS_PAID, INVOICE_STATUS_CANCELLED},
    INVOICE_STATUS_PAID: {INVOICE_STATUS_REPORTED, INVOICE_STATUS_CANCELLED},
    INVOICE_STATUS_REPORTED: set(),
    INVOICE_STATUS_CANCELLED: set(),
}

INITIAL_STATUSES = (INVOICE_STATUS_DRAFT, INVOICE_STATUS_PAID)


@dataclass(frozen=True)
class SaleItemInput:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    discount_bps: int = 0


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_bps: int
    tax_rate_bps: int
    line_total_cents: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_percentage": self.discount_bps / 100,
            "tax_rate_bps": self.tax_rate_bps,
            "line_total_cents": self.line_total_cents,
        }


# =============================================================================
# INPUT PARSING & PRICING
# =============================================================================

def _parse_discount_bps(raw: dict, index: int) -> int:
    if raw.get("discount_bps") is not None:
        bps = coerce_int(raw["discount_bps"], f"items[{index}].discount_bps")
    elif raw.get("discount_percentage") is not None:
        try:
            bps = percent_to_bps(raw["discount_percentage"])
        except ValueError:
            raise SaleError(f"items[{index}].discount_percentage must be a number")
    else:
        bps = 0
    if bps < 0 or bps > MAX_DISCOUNT_BPS:
        raise SaleError(f"items[{index}] discount must be between 0 and 100 percent")
    return bps


def parse_sale_items(raw_items) -> list[SaleItemInput]:
    """
    Validate the item payload of a sale or sales order.

    Accepts dicts with product_id, quantity, optional unit_price_cents and
    discount_percentage (or discount_bps).
    """
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise SaleError("At least one item is required")

    items = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, SaleItemInput):
            items.append(raw)
            continue
        if not isinstance(raw, dict):
            raise SaleError(f"items[{index}] must be an object")
        try:
            product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id")
            quantity = coerce_positive_int(raw.get("quantity"), f"items[{index}].quantity")
            unit_price = raw.get("unit_price_cents")
            if unit_price is not None:
                unit_price = coerce_non_negative_int(unit_price, f"items[{index}].unit_price_cents")
        except ValidationError as exc:
            raise SaleError(str(exc))
        items.append(SaleItemInput(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=unit_price,
            discount_bps=_parse_discount_bps(raw, index),
        ))
    return items


def _load_products(product_ids, *, require_active: bool = True) -> dict[int, Product]:
    ids = set(product_ids)
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
    missing = sorted(ids - products.keys())
    if missing:
        raise SaleError("Product not found", details={"product_ids": missing})
    if require_active:
        inactive = sorted(pid for pid, p in products.items() if not p.is_active)
        if inactive:
            raise SaleError("Product is inactive", details={"product_ids": inactive})
    return products


def price_items(items: list[SaleItemInput]) -> list[PricedLine]:
    """Snapshot prices and compute line totals. Missing unit prices default to the catalog price."""
    products = _load_products(item.product_id for item in items)
    lines = []
    for item in items:
        product = products[item.product_id]
        unit_price = product.price_cents if item.unit_price_cents is None else item.unit_price_cents
        lines.append(PricedLine(
            product_id=product.id,
            quantity=item.quantity,
            unit_price_cents=unit_price,
            discount_bps=item.discount_bps,
            tax_rate_bps=product.tax_rate_bps,
            line_total_cents=line_total_cents(unit_price, item.quantity, item.discount_bps),
        ))
    return lines


def requested_quantities(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def quote_sale(raw_items) -> dict:
    """
    Price a list of items without writing anything.

    Shortages are advisory: stock can change before the sale is committed.
    """
    lines = price_items(parse_sale_items(raw_items))
    totals = summarize_lines((line.line_total_cents, line.tax_rate_bps) for line in lines)
    return {
        "lines": [line.to_dict() for line in lines],
        **totals,
        "shortages": inventory_service.find_shortages(requested_quantities(lines)),
    }


# =============================================================================
# SALE COMMIT
# =============================================================================

def _validate_parties(customer_id, seller_id) -> tuple[Customer, User]:
    if not customer_id:
        raise SaleError("customer_id is required")
    if not seller_id:
        raise SaleError("seller_id is required")

    customer = db.session.get(Customer, coerce_int(customer_id, "customer_id"))
    if customer is None:
        raise SaleError(f"Customer {customer_id} not found")

    seller = db.session.get(User, coerce_int(seller_id, "seller_id"))
    if seller is None or not seller.is_active:
        raise SaleError(f"Seller {seller_id} not found or inactive")

    return customer, seller


def create_invoice_locked(
    *,
    customer: Customer,
    seller: User,
    lines: list[PricedLine],
    invoice_type: str,
    status: str = INVOICE_STATUS_PAID,
    created_by_user_id: int | None = None,
    sales_order_id: int | None = None,
) -> Invoice:
    """
    Insert invoice + items and decrement stock. Caller owns the transaction.

    Raises InsufficientStockError listing every short product; the caller's
    rollback discards the invoice and any decrement already applied.
    """
    if not lines:
        raise SaleError("Cannot create an invoice with no items")

    quantities = requested_quantities(lines)
    shortages = inventory_service.find_shortages(quantities)
    if shortages:
        raise inventory_service.InsufficientStockError(
            "Insufficient stock",
            details={"items": shortages},
        )

    doc_type = DOC_INVOICE_POS if invoice_type == INVOICE_TYPE_POS else DOC_INVOICE_NORMAL
    totals = summarize_lines((line.line_total_cents, line.tax_rate_bps) for line in lines)

    invoice = Invoice(
        number=next_document_number(doc_type),
        invoice_type=invoice_type,
        customer_id=customer.id,
        seller_id=seller.id,
        created_by_user_id=created_by_user_id,
        status=status,
        sales_order_id=sales_order_id,
        created_at=utcnow(),
        **totals,
    )
    for position, line in enumerate(lines, start=1):
        invoice.items.append(InvoiceItem(
            position=position,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_bps=line.discount_bps,
            tax_rate_bps=line.tax_rate_bps,
            line_total_cents=line.line_total_cents,
        ))

    db.session.add(invoice)
    db.session.flush()

    for product_id, quantity in quantities.items():
        inventory_service.decrement_stock(
            product_id,
            quantity,
            movement_type=inventory_service.MOVEMENT_SALE,
            reference_type="invoice",
            reference_id=invoice.id,
            note=f"Invoice {invoice.number}",
            user_id=created_by_user_id,
        )

    return invoice


def commit_sale(
    *,
    customer_id: int,
    seller_id: int,
    items,
    invoice_type: str = INVOICE_TYPE_POS,
    expected_total_cents: int | None = None,
    created_by_user_id: int | None = None,
    status: str = INVOICE_STATUS_PAID,
    acting_user: User | None = None,
) -> Invoice:
    """
    Create an invoice from a cart or item list as one atomic operation.

    Args:
        customer_id: Invoice recipient
        seller_id: Seller credited with the sale
        items: [{product_id, quantity, unit_price_cents?, discount_percentage?}]
        invoice_type: POS or NORMAL
        expected_total_cents: Total the client computed; must match the server's
        created_by_user_id: Acting user
        status: Initial status, draft or paid
        acting_user: When given and not an administrator, may only credit
            the sale to themselves

    Returns:
        The committed Invoice

    Raises:
        SaleError: invalid input (nothing written)
        SalePermissionError: a seller credited the sale to someone else
        InsufficientStockError: stock ran out (nothing written)
    """
    if acting_user is not None and not acting_user.is_admin:
        if coerce_int(seller_id, "seller_id") != acting_user.id:
            raise SalePermissionError("Sellers can only register sales under their own name")
    if invoice_type not in INVOICE_TYPES:
        raise SaleError(f"invoice_type must be one of: {', '.join(INVOICE_TYPES)}")
    if status not in INITIAL_STATUSES:
        raise SaleError(f"Initial status must be one of: {', '.join(INITIAL_STATUSES)}")
    parsed = parse_sale_items(items)
    if expected_total_cents is not None:
        expected_total_cents = coerce_int(expected_total_cents, "total_cents")

    def _op() -> Invoice:
        customer, seller = _validate_parties(customer_id, seller_id)
        lines = price_items(parsed)

        computed = sum(line.line_total_cents for line in lines)
        if expected_total_cents is not None and expected_total_cents != computed:
            raise SaleError(
                "Invoice total does not match item totals",
                details={"expected_total_cents": expected_total_cents, "computed_total_cents": computed},
            )

        return create_invoice_locked(
            customer=customer,
            seller=seller,
            lines=lines,
            invoice_type=invoice_type,
            status=status,
            created_by_user_id=created_by_user_id,
        )

    invoice = run_atomic(_op)
    current_app.logger.info(
        "Invoice %s committed: total=%s items=%s seller=%s",
        invoice.number, invoice.total_cents, len(invoice.items), invoice.seller_id,
    )
    return invoice


# =============================================================================
# INVOICE LIFECYCLE
# =============================================================================

def update_invoice_status(
    invoice_id: int,
    new_status: str,
    *,
    acting_user: User,
    reason: str | None = None,
) -> Invoice:
    """
    Move an invoice along draft -> paid -> reported_dian, or cancel it.

    Cancelling is admin-only and puts back the stock still out on the
    invoice (sold minus already returned through credit notes).
    """
    from .return_service import returned_quantities

    if new_status not in INVOICE_STATUSES:
        raise SaleError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")
    if new_status == INVOICE_STATUS_CANCELLED:
        if not acting_user.is_admin:
            raise ForbiddenError("Only administrators can cancel invoices")
        if not reason or not reason.strip():
            raise SaleError("A reason is required to cancel an invoice")

    def _op() -> Invoice:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")

        allowed = INVOICE_TRANSITIONS.get(invoice.status, set())
        if new_status not in allowed:
            raise InvoiceStateError(
                f"Cannot change invoice from {invoice.status} to {new_status}",
                details={"status": invoice.status, "requested_status": new_status},
            )

        if new_status == INVOICE_STATUS_CANCELLED:
            returned = returned_quantities(invoice.id)
            sold = requested_quantities(invoice.items)
            for product_id, quantity in sold.items():
                outstanding = quantity - returned.get(product_id, 0)
                if outstanding > 0:
                    inventory_service.increment_stock(
                        product_id,
                        outstanding,
                        movement_type=inventory_service.MOVEMENT_INVOICE_CANCEL,
                        reference_type="invoice",
                        reference_id=invoice.id,
                        note=f"Cancel invoice {invoice.number}",
                        user_id=acting_user.id,
                    )
            invoice.cancelled_at = utcnow()
            invoice.cancel_reason = reason.strip()

        invoice.status = new_status
        return invoice

    invoice = run_atomic(_op)
    current_app.logger.info("Invoice %s moved to %s by user %s", invoice.number, new_status, acting_user.id)
    return invoice


# =============================================================================
# QUERIES
# =============================================================================

def _visible_to(invoice: Invoice, acting_user: User | None) -> bool:
    return acting_user is None or acting_user.is_admin or invoice.seller_id == acting_user.id


def get_invoice(invoice_id: int, acting_user: User | None = None) -> Invoice:
    """Sellers only see their own invoices; anyone else's reads as not found."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None or not _visible_to(invoice, acting_user):
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def list_invoices(
    *,
    acting_user: User | None = None,
    invoice_type: str | None = None,
    status: str | None = None,
    seller_id: int | None = None,
    customer_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 200,
) -> list[Invoice]:
    q = db.session.query(Invoice)
    if invoice_type:
        q = q.filter(Invoice.invoice_type == invoice_type)
    if status:
        q = q.filter(Invoice.status == status)
    if acting_user is not None and not acting_user.is_admin:
        q = q.filter(Invoice.seller_id == acting_user.id)
    elif seller_id:
        q = q.filter(Invoice.seller_id == seller_id)
    if customer_id:
        q = q.filter(Invoice.customer_id == customer_id)
    start, end = day_range(date_from, date_to)
    if start is not None:
        q = q.filter(Invoice.created_at >= start)
    if end is not None:
        q = q.filter(Invoice.created_at < end)
    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()
