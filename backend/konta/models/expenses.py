from __future__ import annotations

from ..extensions import db
from konta.time_utils import to_utc_z, utcnow

EXPENSE_CATEGORIES = {
    "viaticos": "Viáticos (Viajes/Subsistencia)",
    "varios": "Varios (Misceláneos)",
    "nomina": "Nómina",
    "servicios": "Servicios Públicos",
    "arriendo": "Arriendo",
    "mantenimiento": "Mantenimiento",
    "otros": "Otros",
}


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_category_date", "category", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    expense_date = db.Column(db.Date, nullable=False)

    # Person the expense is attributed to (e.g. the seller receiving viaticos)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "category_label": EXPENSE_CATEGORIES.get(self.category, self.category),
            "amount_cents": self.amount_cents,
            "description": self.description,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
            "user_id": self.user_id,
            "user_name": self.user.full_name if self.user else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
