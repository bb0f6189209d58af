# Overview: Supplier purchases; receiving a purchase adds its quantities to stock.

"""
Purchase service (ReceivePurchase)

A purchase is received the moment it is saved: the header, its items and
one stock increment per line commit together as status ``completed``.
There is no draft/approval step.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Supplier, User
from ..models.purchases import PURCHASE_STATUS_COMPLETED
from ..time_utils import parse_iso_date, utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    coerce_non_negative_int,
    coerce_positive_int,
)
from . import inventory_service
from .concurrency import run_atomic
from .document_service import DOC_PURCHASE, next_document_number


class PurchaseError(ValidationError):
    """Raised when purchase data fails validation; nothing is written."""


class PurchaseNotFoundError(NotFoundError):
    pass


def _parse_purchase_date(value) -> date:
    if value is None or value == "":
        return utcnow().date()
    if isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
        if parsed is None:
            raise PurchaseError("purchase_date must be an ISO-8601 date")
    else:
        raise PurchaseError("purchase_date must be an ISO-8601 date")

    # one day of slack for clients ahead of UTC
    if parsed > utcnow().date() + timedelta(days=1):
        raise PurchaseError("purchase_date cannot be in the future")
    return parsed


def _parse_purchase_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise PurchaseError("At least one item is required")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise PurchaseError(f"items[{index}] must be an object")
        try:
            items.append({
                "product_id": coerce_int(raw.get("product_id"), f"items[{index}].product_id"),
                "quantity": coerce_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
                "unit_cost_cents": coerce_non_negative_int(
                    raw.get("unit_cost_cents"), f"items[{index}].unit_cost_cents"
                ),
            })
        except ValidationError as exc:
            raise PurchaseError(str(exc))
    return items


def receive_purchase(
    *,
    supplier_id: int,
    buyer_id: int,
    items,
    notes: str | None = None,
    purchase_date=None,
) -> Purchase:
    """
    Record a supplier purchase and add its quantities to stock.

    Args:
        supplier_id: Supplier the goods come from
        buyer_id: User who made the purchase
        items: [{product_id, quantity, unit_cost_cents}]
        notes: Free text
        purchase_date: Business date (defaults to today)

    Returns:
        The committed Purchase

    Raises:
        PurchaseError: invalid input (nothing written)
    """
    if not supplier_id:
        raise PurchaseError("supplier_id is required")
    if not buyer_id:
        raise PurchaseError("buyer_id is required")
    parsed = _parse_purchase_items(items)
    business_date = _parse_purchase_date(purchase_date)

    def _op() -> Purchase:
        supplier = db.session.get(Supplier, coerce_int(supplier_id, "supplier_id"))
        if supplier is None:
            raise PurchaseError(f"Supplier {supplier_id} not found")
        buyer = db.session.get(User, coerce_int(buyer_id, "buyer_id"))
        if buyer is None:
            raise PurchaseError(f"Buyer {buyer_id} not found")

        product_ids = {item["product_id"] for item in parsed}
        found = {
            row.id for row in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
        }
        missing = sorted(product_ids - found)
        if missing:
            raise PurchaseError("Product not found", details={"product_ids": missing})

        purchase = Purchase(
            number=next_document_number(DOC_PURCHASE),
            supplier_id=supplier.id,
            buyer_id=buyer.id,
            purchase_date=business_date,
            notes=(notes or "").strip() or None,
            status=PURCHASE_STATUS_COMPLETED,
        )
        total = 0
        for position, item in enumerate(parsed, start=1):
            line_cost = item["unit_cost_cents"] * item["quantity"]
            total += line_cost
            purchase.items.append(PurchaseItem(
                position=position,
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_cost_cents=item["unit_cost_cents"],
                total_cost_cents=line_cost,
            ))
        purchase.total_cents = total

        db.session.add(purchase)
        db.session.flush()

        for item in parsed:
            inventory_service.increment_stock(
                item["product_id"],
                item["quantity"],
                movement_type=inventory_service.MOVEMENT_PURCHASE,
                reference_type="purchase",
                reference_id=purchase.id,
                note=f"Purchase {purchase.number}",
                user_id=buyer.id,
            )
        return purchase

    purchase = run_atomic(_op)
    current_app.logger.info(
        "Purchase %s received from supplier %s: total=%s",
        purchase.number, purchase.supplier_id, purchase.total_cents,
    )
    return purchase


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def list_purchases(*, supplier_id: int | None = None, limit: int = 200) -> list[Purchase]:
    q = db.session.query(Purchase)
    if supplier_id:
        q = q.filter(Purchase.supplier_id == supplier_id)
    return q.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).limit(limit).all()
