# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role, require_user
from ..models.users import ROLE_ADMIN
from ..services import purchase_service
from ..services.purchase_service import PurchaseError, PurchaseNotFoundError

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def receive_purchase_route():
    """
    Receive a supplier purchase; stock increases immediately.

    Request body:
    {
        "supplier_id": 3,
        "buyer_id": 1,                 (optional, defaults to the acting user)
        "purchase_date": "2026-01-15", (optional)
        "notes": "...",
        "items": [{"product_id": 5, "quantity": 10, "unit_cost_cents": 6000}]
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.receive_purchase(
            supplier_id=data.get("supplier_id"),
            buyer_id=data.get("buyer_id") or g.current_user.id,
            items=data.get("items"),
            notes=data.get("notes"),
            purchase_date=data.get("purchase_date"),
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 201

    except PurchaseError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_user
@require_role(ROLE_ADMIN)
def list_purchases_route():
    purchases = purchase_service.list_purchases(supplier_id=request.args.get("supplier_id", type=int))
    return jsonify({
        "purchases": [p.to_dict() for p in purchases],
        "count": len(purchases),
    }), 200


@purchases_bp.get("/<int:purchase_id>")
@require_user
@require_role(ROLE_ADMIN)
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
    except PurchaseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200
