# Overview: Stock mutations; the only code allowed to change Product.stock.

"""
KONTA stock invariants (authoritative)

- Product.stock is never negative. Every decrement is a single conditional
  UPDATE (``stock = stock - q WHERE stock >= q``); when it matches no row the
  whole surrounding transaction is rolled back by the caller.
- Stock is never computed in Python and written back. Increments are
  ``stock = stock + q`` in SQL as well.
- Every change appends a StockMovement row in the same transaction, with the
  stock level read back after the update.
- Functions here never commit. They run inside the caller's transaction
  (see concurrency.run_atomic).
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Product, StockMovement
from ..validation import ConflictError, NotFoundError, ValidationError

MOVEMENT_INITIAL = "INITIAL"
MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_INVOICE_CANCEL = "INVOICE_CANCEL"


class InsufficientStockError(ConflictError):
    """Raised when a sale would drive a product's stock below zero."""


def get_stock(product_id: int) -> int:
    stock = db.session.query(Product.stock).filter(Product.id == product_id).scalar()
    if stock is None:
        raise NotFoundError(f"Product {product_id} not found")
    return int(stock)


def find_shortages(quantities: dict[int, int]) -> list[dict]:
    """
    Compare requested quantities per product against current stock.

    Advisory when called outside a write transaction; the conditional update
    in decrement_stock is the enforcement point.
    """
    if not quantities:
        return []
    rows = (
        db.session.query(Product.id, Product.stock)
        .filter(Product.id.in_(list(quantities.keys())))
        .all()
    )
    on_hand = {row.id: int(row.stock) for row in rows}

    shortages = []
    for product_id, requested in quantities.items():
        available = on_hand.get(product_id, 0)
        if requested > available:
            shortages.append({
                "product_id": product_id,
                "requested_quantity": requested,
                "available_quantity": available,
            })
    return shortages


def _record_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity_delta: int,
    reference_type: str | None,
    reference_id: int | None,
    note: str | None,
    user_id: int | None,
) -> StockMovement:
    stock_after = get_stock(product_id)
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        stock_after=stock_after,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    return movement


def decrement_stock(
    product_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_SALE,
    reference_type: str | None = None,
    reference_id: int | None = None,
    note: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Remove ``quantity`` units, failing instead of going negative.

    Raises:
        InsufficientStockError: stock is lower than ``quantity``
        NotFoundError: product does not exist
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        available = get_stock(product_id)
        raise InsufficientStockError(
            "Insufficient stock",
            details={"items": [{
                "product_id": product_id,
                "requested_quantity": quantity,
                "available_quantity": available,
            }]},
        )

    return _record_movement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=-quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        user_id=user_id,
    )


def increment_stock(
    product_id: int,
    quantity: int,
    *,
    movement_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    note: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Add ``quantity`` units (returns, purchase receipts, cancellations)."""
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise NotFoundError(f"Product {product_id} not found")

    return _record_movement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        user_id=user_id,
    )


def record_initial_stock(product: Product, user_id: int | None = None) -> StockMovement | None:
    """Movement row for the stock a product was created with."""
    if not product.stock:
        return None
    movement = StockMovement(
        product_id=product.id,
        movement_type=MOVEMENT_INITIAL,
        quantity_delta=product.stock,
        stock_after=product.stock,
        reference_type="product",
        reference_id=product.id,
        note="Initial stock",
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    return movement


def list_movements(product_id: int, limit: int = 100) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
