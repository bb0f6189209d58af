"""
Return / credit-note service

WHY: A return reverses part of an invoice. It is recorded as a credit note
layered on top of the invoice; the invoice keeps its original total and
status, and reporting subtracts credit notes to get net revenue.

RETURN BOUND: for every (invoice, product), the quantity returned across
all credit notes never exceeds the quantity sold on that invoice. The check
runs inside the same write transaction that creates the credit note and
restores stock, with the invoice row locked, so two concurrent returns
cannot both pass it.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CreditNote, CreditNoteItem, Invoice, InvoiceItem, User
from ..models.invoices import INVOICE_STATUS_CANCELLED, INVOICE_STATUS_DRAFT
from ..money import effective_unit_price_cents, line_total_cents
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    coerce_non_negative_int,
    coerce_positive_int,
)
from . import inventory_service
from .concurrency import lock_for_update, run_atomic
from .document_service import DOC_CREDIT_NOTE, next_document_number


class ReturnError(ValidationError):
    """Raised for invalid return input; nothing is written."""


class ReturnQuantityError(ConflictError):
    """Raised when a return would exceed what is still returnable on the invoice."""


class CreditNoteNotFoundError(NotFoundError):
    pass


def _parse_return_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ReturnError("At least one item is required")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ReturnError(f"items[{index}] must be an object")
        try:
            product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id")
            quantity = coerce_positive_int(raw.get("quantity"), f"items[{index}].quantity")
            unit_price = raw.get("unit_price_cents")
            if unit_price is not None:
                unit_price = coerce_non_negative_int(unit_price, f"items[{index}].unit_price_cents")
        except ValidationError as exc:
            raise ReturnError(str(exc))
        items.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price})
    return items


# =============================================================================
# QUANTITY BOOKKEEPING
# =============================================================================

def sold_lines_by_product(invoice: Invoice) -> dict[int, dict]:
    """Quantity sold and amount charged per product on an invoice."""
    sold: dict[int, dict] = {}
    for item in invoice.items:
        entry = sold.setdefault(item.product_id, {"quantity": 0, "amount_cents": 0})
        entry["quantity"] += item.quantity
        entry["amount_cents"] += item.line_total_cents
    return sold


def returned_quantities(invoice_id: int) -> dict[int, int]:
    """Cumulative quantity already returned per product for an invoice."""
    rows = (
        db.session.query(CreditNoteItem.product_id, func.sum(CreditNoteItem.quantity))
        .join(CreditNote, CreditNote.id == CreditNoteItem.credit_note_id)
        .filter(CreditNote.invoice_id == invoice_id)
        .group_by(CreditNoteItem.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def refunded_amounts(invoice_id: int) -> dict[int, int]:
    """Cumulative amount already refunded per product for an invoice."""
    rows = (
        db.session.query(CreditNoteItem.product_id, func.sum(CreditNoteItem.line_total_cents))
        .join(CreditNote, CreditNote.id == CreditNoteItem.credit_note_id)
        .filter(CreditNote.invoice_id == invoice_id)
        .group_by(CreditNoteItem.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def get_returnable_quantities(invoice_id: int) -> list[dict]:
    """
    Per product: sold, already returned, still returnable, and the
    effective unit price a return is refunded at.
    """
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")

    returned = returned_quantities(invoice_id)
    refunded = refunded_amounts(invoice_id)
    result = []
    for product_id, sold in sold_lines_by_product(invoice).items():
        already = returned.get(product_id, 0)
        result.append({
            "product_id": product_id,
            "sold_quantity": sold["quantity"],
            "returned_quantity": already,
            "returnable_quantity": sold["quantity"] - already,
            "unit_price_cents": effective_unit_price_cents(sold["amount_cents"], sold["quantity"]),
            "refundable_cents": sold["amount_cents"] - refunded.get(product_id, 0),
        })
    return result


# =============================================================================
# PROCESS RETURN
# =============================================================================

def process_return(
    invoice_id: int,
    items,
    reason: str,
    user_id: int,
) -> CreditNote:
    """
    Create a credit note and restore stock for the returned quantities.

    Args:
        invoice_id: Invoice being returned against
        items: [{product_id, quantity, unit_price_cents?}]
        reason: Why the goods came back (required)
        user_id: User processing the return

    Returns:
        The committed CreditNote

    Raises:
        ReturnError: invalid input or invoice not returnable (nothing written)
        ReturnQuantityError: a quantity exceeds what is still returnable
        NotFoundError: invoice or user not found
    """
    parsed = _parse_return_items(items)
    if reason is None or not str(reason).strip():
        raise ReturnError("A reason is required")
    reason = str(reason).strip()

    def _op() -> CreditNote:
        user = db.session.get(User, user_id) if user_id else None
        if user is None:
            raise ReturnError("A valid user is required to process a return")

        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        if invoice.status in (INVOICE_STATUS_DRAFT, INVOICE_STATUS_CANCELLED):
            raise ReturnError(
                f"Cannot return items from a {invoice.status} invoice",
                details={"status": invoice.status},
            )

        sold = sold_lines_by_product(invoice)
        returned = returned_quantities(invoice.id)

        requested: dict[int, int] = {}
        for item in parsed:
            if item["product_id"] not in sold:
                raise ReturnError(
                    f"Product {item['product_id']} was not sold on invoice {invoice.number}",
                    details={"product_id": item["product_id"]},
                )
            requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]

        exceeded = []
        for product_id, quantity in requested.items():
            returnable = sold[product_id]["quantity"] - returned.get(product_id, 0)
            if quantity > returnable:
                exceeded.append({
                    "product_id": product_id,
                    "requested_quantity": quantity,
                    "sold_quantity": sold[product_id]["quantity"],
                    "returned_quantity": returned.get(product_id, 0),
                    "returnable_quantity": returnable,
                })
        if exceeded:
            raise ReturnQuantityError(
                "Return quantity exceeds quantity still returnable on the invoice",
                details={"items": exceeded},
            )

        credit_note = CreditNote(
            number=next_document_number(DOC_CREDIT_NOTE),
            invoice_id=invoice.id,
            reason=reason,
            created_by_user_id=user.id,
        )
        # Money still refundable per product; the per-unit price is rounded,
        # so the last units returned take exactly what is left of the charge.
        refunded = refunded_amounts(invoice.id)
        remaining = {
            product_id: {
                "quantity": entry["quantity"] - returned.get(product_id, 0),
                "amount_cents": entry["amount_cents"] - refunded.get(product_id, 0),
            }
            for product_id, entry in sold.items()
        }

        total = 0
        for position, item in enumerate(parsed, start=1):
            entry = sold[item["product_id"]]
            left = remaining[item["product_id"]]
            max_unit_price = effective_unit_price_cents(entry["amount_cents"], entry["quantity"])
            unit_price = item["unit_price_cents"]
            if unit_price is None:
                if item["quantity"] == left["quantity"]:
                    amount = left["amount_cents"]
                else:
                    amount = line_total_cents(max_unit_price, item["quantity"])
            elif unit_price > max_unit_price:
                raise ReturnError(
                    "Refund unit price exceeds the price charged on the invoice",
                    details={"product_id": item["product_id"], "max_unit_price_cents": max_unit_price},
                )
            else:
                amount = line_total_cents(unit_price, item["quantity"])

            capped = max(0, min(amount, left["amount_cents"]))
            if unit_price is None or capped != amount:
                unit_price = effective_unit_price_cents(capped, item["quantity"])
            amount = capped
            left["quantity"] -= item["quantity"]
            left["amount_cents"] -= amount
            total += amount
            credit_note.items.append(CreditNoteItem(
                position=position,
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price_cents=unit_price,
                line_total_cents=amount,
            ))
        credit_note.total_cents = total

        db.session.add(credit_note)
        db.session.flush()

        for product_id, quantity in requested.items():
            inventory_service.increment_stock(
                product_id,
                quantity,
                movement_type=inventory_service.MOVEMENT_RETURN,
                reference_type="credit_note",
                reference_id=credit_note.id,
                note=f"Credit note {credit_note.number} for invoice {invoice.number}",
                user_id=user.id,
            )

        return credit_note

    credit_note = run_atomic(_op)
    current_app.logger.info(
        "Credit note %s created for invoice %s: total=%s",
        credit_note.number, credit_note.invoice_id, credit_note.total_cents,
    )
    return credit_note


# =============================================================================
# QUERIES
# =============================================================================

def get_credit_note(credit_note_id: int) -> CreditNote:
    credit_note = db.session.get(CreditNote, credit_note_id)
    if credit_note is None:
        raise CreditNoteNotFoundError(f"Credit note {credit_note_id} not found")
    return credit_note


def list_credit_notes(invoice_id: int) -> list[CreditNote]:
    """All credit notes of an invoice, newest first."""
    return (
        db.session.query(CreditNote)
        .filter_by(invoice_id=invoice_id)
        .order_by(CreditNote.created_at.desc(), CreditNote.id.desc())
        .all()
    )


def invoice_items_for(invoice_id: int) -> list[InvoiceItem]:
    return (
        db.session.query(InvoiceItem)
        .filter_by(invoice_id=invoice_id)
        .order_by(InvoiceItem.position)
        .all()
    )
