# backend/konta/services/products_service.py
"""
Products service

Stock is set once when a product is created (recorded as an INITIAL stock
movement). Updates never touch it; after creation stock only moves through
inventory_service.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Product
from ..validation import ConflictError, NotFoundError, ValidationError
from . import inventory_service

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "price_cents", "tax_rate_bps", "is_active"}


class CatalogError(ValidationError):
    pass


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("SKU already exists.", details={"sku": sku})


def list_products(
    *,
    search: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing, optionally filtered by a name/SKU search and paginated.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFoundError(f"Product {product_id} not found")
    return p


def create_product(*, patch: dict, user_id: int | None = None) -> Product:
    """
    Create a product from a validated patch dict.

    ``stock`` is accepted here only; it becomes the INITIAL movement.

    Raises:
        ConflictError: If SKU already exists
    """
    sku = patch.get("sku")
    if not sku:
        raise CatalogError("sku is required")
    _ensure_unique_sku(sku)

    p = Product(stock=patch.get("stock") or 0)
    apply_product_patch(p, patch)

    try:
        db.session.add(p)
        db.session.flush()
        inventory_service.record_initial_stock(p, user_id=user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update catalog fields. Stock cannot be changed here.

    Raises:
        CatalogError: If the patch tries to set stock
        ConflictError: If new SKU already exists
        NotFoundError: If the product does not exist
    """
    if "stock" in patch:
        raise CatalogError(
            "Stock cannot be edited directly; it changes through sales, returns and purchases"
        )

    p = get_product(product_id)
    if "sku" in patch and patch["sku"] != p.sku:
        _ensure_unique_sku(patch["sku"], exclude_id=p.id)

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def list_low_stock(threshold: int = 5) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
