# Overview: Flask API routes for users (admins and sellers); parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_role, require_user
from ..models.users import ROLE_ADMIN, ROLE_SELLER
from ..services import user_service
from ..validation import ConflictError, NotFoundError, ValidationError

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/me")
@require_user
def current_user_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@users_bp.get("")
@require_user
def list_users_route():
    """
    List users.

    Query params:
    - role: admin | seller (optional)
    - active: "true" to return only active users (seller pickers)
    """
    users = user_service.list_users(
        role=request.args.get("role"),
        include_inactive=request.args.get("active", "false").lower() != "true",
    )
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(
            data.get("email"),
            data.get("full_name"),
            data.get("role") or ROLE_SELLER,
        )
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"user": user.to_dict()}), 201


@users_bp.patch("/<int:user_id>")
@require_user
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean"}), 400

    try:
        user = user_service.update_user(
            user_id,
            role=data.get("role"),
            is_active=is_active,
            full_name=data.get("full_name"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"user": user.to_dict()}), 200
