# Overview: Flask API routes for customers and suppliers; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_role, require_user
from ..models import Customer, Supplier
from ..models.users import ROLE_ADMIN
from ..services import contacts_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "nit_cedula", "email", "phone", "address"},
    required_on_create={"name", "nit_cedula"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "nit", "contact_name", "email", "phone"},
    required_on_create={"name", "nit"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


# =============================================================================
# CUSTOMERS
# =============================================================================

@customers_bp.get("")
@require_user
def list_customers_route():
    customers = contacts_service.list_customers(request.args.get("q"))
    return jsonify({"customers": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.get("/<int:customer_id>")
@require_user
def get_customer_route(customer_id: int):
    try:
        customer = contacts_service.get_customer(customer_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.post("")
@require_user
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = contacts_service.create_customer(patch)
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.patch("/<int:customer_id>")
@require_user
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        customer = contacts_service.update_customer(customer_id, patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"customer": customer.to_dict()}), 200


# =============================================================================
# SUPPLIERS
# =============================================================================

@suppliers_bp.get("")
@require_user
def list_suppliers_route():
    suppliers = contacts_service.list_suppliers(request.args.get("q"))
    return jsonify({"suppliers": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_user
def get_supplier_route(supplier_id: int):
    try:
        supplier = contacts_service.get_supplier(supplier_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"supplier": supplier.to_dict()}), 200


@suppliers_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = contacts_service.create_supplier(patch)
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"supplier": supplier.to_dict()}), 201


@suppliers_bp.patch("/<int:supplier_id>")
@require_user
@require_role(ROLE_ADMIN)
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        supplier = contacts_service.update_supplier(supplier_id, patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"supplier": supplier.to_dict()}), 200
