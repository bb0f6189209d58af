from __future__ import annotations

from ..extensions import db
from konta.time_utils import to_utc_z, utcnow

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_EXECUTED = "executed"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_TERMINAL_STATUSES = (ORDER_STATUS_EXECUTED, ORDER_STATUS_CANCELLED)


class SalesOrder(db.Model):
    """
    Pre-sale ("preventa") assigned to a seller.

    LIFECYCLE: pending -> executed (creates exactly one invoice) or
    pending -> cancelled. Both outcomes are terminal.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.Index("ix_sales_orders_seller_status", "seller_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    executed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer")
    seller = db.relationship("User", foreign_keys=[seller_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id])
    items = db.relationship(
        "SalesOrderItem",
        back_populates="sales_order",
        order_by="SalesOrderItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "seller_id": self.seller_id,
            "seller_name": self.seller.full_name if self.seller else None,
            "created_by_user_id": self.created_by_user_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "invoice_id": self.invoice_id,
            "created_at": to_utc_z(self.created_at),
            "executed_at": to_utc_z(self.executed_at) if self.executed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SalesOrderItem(db.Model):
    __tablename__ = "sales_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sales_order = db.relationship("SalesOrder", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_order_id": self.sales_order_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_percentage": self.discount_bps / 100,
            "discount_bps": self.discount_bps,
            "line_total_cents": self.line_total_cents,
        }
