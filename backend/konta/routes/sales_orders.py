# Overview: Flask API routes for sales orders (preventas); parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role, require_user
from ..models.users import ROLE_ADMIN
from ..services import sales_order_service
from ..services.inventory_service import InsufficientStockError
from ..services.sales_order_service import (
    SalesOrderNotFoundError,
    SalesOrderPermissionError,
    SalesOrderStateError,
)
from ..validation import ValidationError

sales_orders_bp = Blueprint("sales_orders", __name__, url_prefix="/api/sales-orders")


@sales_orders_bp.post("")
@require_user
def create_sales_order_route():
    """
    Create a pending sales order.

    Request body:
    {
        "customer_id": 1,
        "seller_id": 2,     (admins only; sellers always own their orders)
        "notes": "...",
        "items": [{"product_id": 5, "quantity": 3, "discount_percentage": 0}]
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        order = sales_order_service.create_sales_order(
            customer_id=data.get("customer_id"),
            seller_id=data.get("seller_id"),
            items=data.get("items"),
            acting_user=g.current_user,
            notes=data.get("notes"),
        )
        return jsonify({"sales_order": order.to_dict(include_items=True)}), 201

    except SalesOrderPermissionError as e:
        return jsonify({"error": str(e)}), 403
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create sales order")
        return jsonify({"error": "Internal server error"}), 500


@sales_orders_bp.get("")
@require_user
def list_sales_orders_route():
    orders = sales_order_service.list_sales_orders(
        acting_user=g.current_user,
        status=request.args.get("status"),
        seller_id=request.args.get("seller_id", type=int),
    )
    return jsonify({
        "sales_orders": [o.to_dict() for o in orders],
        "count": len(orders),
    }), 200


@sales_orders_bp.get("/<int:order_id>")
@require_user
def get_sales_order_route(order_id: int):
    try:
        order = sales_order_service.get_sales_order(order_id)
    except SalesOrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    if not g.current_user.is_admin and order.seller_id != g.current_user.id:
        return jsonify({"error": "Sales order not found"}), 404
    return jsonify({"sales_order": order.to_dict(include_items=True)}), 200


@sales_orders_bp.post("/<int:order_id>/execute")
@require_user
def execute_sales_order_route(order_id: int):
    """
    Execute a pending order: creates its invoice and decrements stock.

    Returns:
        200: Executed order (invoice_id set)
        403: Not an administrator or the assigned seller
        409: Order not pending, or insufficient stock (order stays pending)
    """
    try:
        order = sales_order_service.execute_sales_order(order_id, acting_user=g.current_user)
        return jsonify({"sales_order": order.to_dict(include_items=True)}), 200

    except SalesOrderPermissionError as e:
        return jsonify({"error": str(e)}), 403
    except SalesOrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (SalesOrderStateError, InsufficientStockError) as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to execute sales order")
        return jsonify({"error": "Internal server error"}), 500


@sales_orders_bp.post("/<int:order_id>/cancel")
@require_user
@require_role(ROLE_ADMIN)
def cancel_sales_order_route(order_id: int):
    try:
        order = sales_order_service.cancel_sales_order(order_id, acting_user=g.current_user)
        return jsonify({"sales_order": order.to_dict()}), 200

    except SalesOrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SalesOrderStateError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to cancel sales order")
        return jsonify({"error": "Internal server error"}), 500
