# Overview: Flask API routes for operating expenses; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_role, require_user
from ..models.expenses import EXPENSE_CATEGORIES
from ..models.users import ROLE_ADMIN
from ..services import expense_service
from ..services.expense_service import ExpenseError

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("/categories")
@require_user
def expense_categories_route():
    return jsonify({
        "categories": [{"code": code, "label": label} for code, label in EXPENSE_CATEGORIES.items()],
    }), 200


@expenses_bp.get("")
@require_user
@require_role(ROLE_ADMIN)
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            category=request.args.get("category"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
    except ExpenseError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "expenses": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total_cents": sum(e.amount_cents for e in expenses),
    }), 200


@expenses_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def create_expense_route():
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_service.create_expense(
            category=data.get("category"),
            amount_cents=data.get("amount_cents"),
            description=data.get("description"),
            expense_date=data.get("expense_date"),
            user_id=data.get("user_id"),
            created_by_user_id=g.current_user.id,
        )
    except ExpenseError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    return jsonify({"expense": expense.to_dict()}), 201
