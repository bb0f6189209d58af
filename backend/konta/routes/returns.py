# Overview: Flask API routes for returns (credit notes); parses input and returns JSON responses.

# backend/konta/routes/returns.py
"""
Return Processing API Routes

A return is recorded as a credit note against a committed invoice and
puts the returned units back in stock.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_user
from ..services import return_service
from ..services.return_service import CreditNoteNotFoundError, ReturnError, ReturnQuantityError
from ..validation import NotFoundError

returns_bp = Blueprint("returns", __name__, url_prefix="/api")


@returns_bp.post("/invoices/<int:invoice_id>/returns")
@require_user
def create_return_route(invoice_id: int):
    """
    Process a return.

    Request body:
    {
        "reason": "Producto defectuoso",
        "items": [{"product_id": 5, "quantity": 1, "unit_price_cents": 9000}]
    }

    Returns:
        201: Credit note with items
        400: Invalid input or invoice not returnable
        404: Invoice not found
        409: Quantity exceeds what is still returnable
    """
    data = request.get_json(silent=True) or {}
    try:
        credit_note = return_service.process_return(
            invoice_id,
            data.get("items"),
            data.get("reason"),
            g.current_user.id,
        )
        return jsonify({"credit_note": credit_note.to_dict(include_items=True)}), 201

    except ReturnQuantityError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except ReturnError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/invoices/<int:invoice_id>/returns")
@require_user
def list_returns_route(invoice_id: int):
    credit_notes = return_service.list_credit_notes(invoice_id)
    return jsonify({
        "credit_notes": [cn.to_dict(include_items=True) for cn in credit_notes],
        "count": len(credit_notes),
    }), 200


@returns_bp.get("/invoices/<int:invoice_id>/returnable")
@require_user
def returnable_route(invoice_id: int):
    try:
        items = return_service.get_returnable_quantities(invoice_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"invoice_id": invoice_id, "items": items}), 200


@returns_bp.get("/credit-notes/<int:credit_note_id>")
@require_user
def get_credit_note_route(credit_note_id: int):
    try:
        credit_note = return_service.get_credit_note(credit_note_id)
    except CreditNoteNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"credit_note": credit_note.to_dict(include_items=True)}), 200
