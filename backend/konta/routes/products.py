# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/konta/routes/products.py
"""
Product management routes.

Reads are open to every user; writes require an administrator. Stock can
only be given at creation time.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role, require_user
from ..models import Product
from ..models.users import ROLE_ADMIN
from ..services import inventory_service, products_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "tax_rate_bps", "stock", "is_active"},
    required_on_create={"sku", "name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price_cents", "tax_rate_bps", "is_active"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_user
def list_products():
    """
    List products.

    Query params:
    - q: str (optional) - search by name or SKU
    - include_inactive: bool (optional)
    - page / per_page: int (optional) - pagination; omitted returns all items
    """
    result = products_service.list_products(
        search=request.args.get("q"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/low-stock")
@require_user
def low_stock_products():
    threshold = request.args.get("threshold", 5, type=int)
    products = products_service.list_low_stock(threshold)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_user
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


@products_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def create_product_route():
    payload = request.get_json(silent=True) or {}
    payload.setdefault("tax_rate_bps", current_app.config["DEFAULT_TAX_RATE_BPS"])

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        product = products_service.create_product(patch=patch, user_id=g.current_user.id)
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(product.to_dict()), 201


@products_bp.patch("/<int:product_id>")
@require_user
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if "stock" in payload:
        return jsonify({
            "error": "Stock cannot be edited directly; it changes through sales, returns and purchases",
        }), 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(product_id=product_id, patch=patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(product.to_dict()), 200


@products_bp.get("/<int:product_id>/movements")
@require_user
def product_movements_route(product_id: int):
    try:
        products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    movements = inventory_service.list_movements(product_id, limit=request.args.get("limit", 100, type=int))
    return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
