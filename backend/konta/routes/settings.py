from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role, require_user
from ..models.users import ROLE_ADMIN
from ..services import settings_service
from ..services.settings_service import SettingsAuthorizationError, SettingsValidationError

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/company")
@require_user
@require_role(ROLE_ADMIN)
def get_company_settings_route():
    return jsonify({"company": settings_service.get_company_settings()}), 200


@settings_bp.put("/company")
@require_user
@require_role(ROLE_ADMIN)
def update_company_settings_route():
    """
    Update issuer data.

    Request body (any subset):
    {"name": "...", "nit": "900123456-7", "resolution_number": "...",
     "address": "...", "phone": "...", "city": "..."}
    """
    data = request.get_json(silent=True)
    try:
        company = settings_service.update_company_settings(data, acting_user=g.current_user)
        return jsonify({"company": company}), 200

    except SettingsAuthorizationError as e:
        return jsonify({"error": str(e)}), 403
    except SettingsValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update company settings")
        return jsonify({"error": "Internal server error"}), 500
