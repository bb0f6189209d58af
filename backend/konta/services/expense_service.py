# Overview: Operating expenses (viaticos, payroll, rent...); feed the operating result report.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Expense, User
from ..models.expenses import EXPENSE_CATEGORIES
from ..time_utils import parse_iso_date, utcnow
from ..validation import ValidationError, coerce_int, coerce_positive_int


class ExpenseError(ValidationError):
    pass


def _parse_date(value, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        parsed = parse_iso_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ExpenseError(f"{field} must be an ISO-8601 date")
    return parsed


def create_expense(
    *,
    category: str,
    amount_cents,
    created_by_user_id: int,
    description: str | None = None,
    expense_date=None,
    user_id: int | None = None,
) -> Expense:
    """
    Record an expense.

    Raises:
        ExpenseError: unknown category, non-positive amount, unknown user
    """
    if category not in EXPENSE_CATEGORIES:
        raise ExpenseError(
            f"category must be one of: {', '.join(EXPENSE_CATEGORIES)}",
            details={"categories": list(EXPENSE_CATEGORIES)},
        )
    try:
        amount = coerce_positive_int(amount_cents, "amount_cents")
    except ValidationError as exc:
        raise ExpenseError(str(exc))

    if user_id is not None:
        if db.session.get(User, coerce_int(user_id, "user_id")) is None:
            raise ExpenseError(f"User {user_id} not found")

    expense = Expense(
        category=category,
        amount_cents=amount,
        description=(description or "").strip() or None,
        expense_date=_parse_date(expense_date, "expense_date") or utcnow().date(),
        user_id=user_id,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(expense)
    db.session.commit()
    current_app.logger.info("Expense %s recorded: %s %s", expense.id, category, amount)
    return expense


def list_expenses(
    *,
    category: str | None = None,
    date_from=None,
    date_to=None,
    limit: int = 500,
) -> list[Expense]:
    q = db.session.query(Expense)
    if category:
        q = q.filter(Expense.category == category)
    start = _parse_date(date_from, "date_from")
    end = _parse_date(date_to, "date_to")
    if start is not None:
        q = q.filter(Expense.expense_date >= start)
    if end is not None:
        q = q.filter(Expense.expense_date <= end)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).limit(limit).all()


def total_expenses(date_from: date | None = None, date_to: date | None = None) -> int:
    q = db.session.query(db.func.coalesce(db.func.sum(Expense.amount_cents), 0))
    if date_from is not None:
        q = q.filter(Expense.expense_date >= date_from)
    if date_to is not None:
        q = q.filter(Expense.expense_date <= date_to)
    return int(q.scalar() or 0)
