# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/konta/routes/invoices.py
"""
Invoice API routes

POST /api/invoices is the single checkout entry point: POS carts and
normal invoices both commit through sales_service.commit_sale.
"""

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import require_user
from ..services import compliance, sales_service, settings_service
from ..services.compliance import ComplianceError, SigningNotConfiguredError
from ..services.inventory_service import InsufficientStockError
from ..services.sales_service import InvoiceNotFoundError, InvoiceStateError, SaleError
from ..time_utils import parse_iso_date
from ..validation import ForbiddenError, ValidationError

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")


@invoices_bp.post("")
@require_user
def create_invoice_route():
    """
    Commit a sale.

    Request body:
    {
        "customer_id": 1,
        "seller_id": 2,                 (optional, defaults to the acting user; admins only)
        "invoice_type": "POS",          (POS | NORMAL)
        "status": "paid",               (optional, draft | paid)
        "total_cents": 23800,           (optional, checked against the items)
        "items": [{"product_id": 5, "quantity": 2, "discount_percentage": 10}]
    }

    Returns:
        201: Invoice with items
        400: Invalid input
        403: A seller tried to credit the sale to someone else
        409: Insufficient stock (details.items lists every short product)
    """
    data = request.get_json(silent=True) or {}
    try:
        invoice = sales_service.commit_sale(
            customer_id=data.get("customer_id"),
            seller_id=data.get("seller_id") or g.current_user.id,
            items=data.get("items"),
            invoice_type=data.get("invoice_type") or "POS",
            expected_total_cents=data.get("total_cents"),
            created_by_user_id=g.current_user.id,
            status=data.get("status") or "paid",
            acting_user=g.current_user,
        )
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201

    except ForbiddenError as e:
        return jsonify({"error": str(e)}), 403
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/quote")
@require_user
def quote_invoice_route():
    """Price a list of items without writing anything."""
    data = request.get_json(silent=True) or {}
    try:
        return jsonify(sales_service.quote_sale(data.get("items"))), 200
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400


@invoices_bp.get("")
@require_user
def list_invoices_route():
    try:
        invoices = sales_service.list_invoices(
            acting_user=g.current_user,
            invoice_type=request.args.get("invoice_type"),
            status=request.args.get("status"),
            seller_id=request.args.get("seller_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            date_from=_date_arg("date_from"),
            date_to=_date_arg("date_to"),
            limit=min(request.args.get("limit", 200, type=int), 1000),
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    return jsonify({
        "invoices": [inv.to_dict() for inv in invoices],
        "count": len(invoices),
    }), 200


@invoices_bp.get("/<int:invoice_id>")
@require_user
def get_invoice_route(invoice_id: int):
    try:
        invoice = sales_service.get_invoice(invoice_id, acting_user=g.current_user)
    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({
        "invoice": invoice.to_dict(include_items=True),
        "company": settings_service.get_company_settings(),
    }), 200


@invoices_bp.post("/<int:invoice_id>/status")
@require_user
def update_invoice_status_route(invoice_id: int):
    """
    Change invoice status.

    Request body: {"status": "paid" | "reported_dian" | "cancelled", "reason": "..."}
    Cancelling requires an administrator and a reason.
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return jsonify({"error": "status required"}), 400

    try:
        invoice = sales_service.update_invoice_status(
            invoice_id,
            status,
            acting_user=g.current_user,
            reason=data.get("reason"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 200

    except ForbiddenError as e:
        return jsonify({"error": str(e)}), 403
    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InvoiceStateError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/dian-xml")
@require_user
def invoice_dian_xml_route(invoice_id: int):
    """
    UBL 2.1 electronic-invoice XML.

    Served unsigned (X-Document-Signed: false) unless a signer is registered.
    """
    try:
        invoice = sales_service.get_invoice(invoice_id, acting_user=g.current_user)
        document, signed = compliance.render_invoice_document(invoice)
    except InvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SigningNotConfiguredError as e:
        return jsonify({"error": str(e)}), 409
    except ComplianceError as e:
        return jsonify({"error": str(e)}), 400

    response = Response(document, mimetype="application/xml")
    response.headers["X-Document-Signed"] = "true" if signed else "false"
    response.headers["Content-Disposition"] = f'attachment; filename="{invoice.number}.xml"'
    return response
