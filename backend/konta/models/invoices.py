from __future__ import annotations

from ..extensions import db
from konta.time_utils import to_utc_z, utcnow

INVOICE_TYPE_POS = "POS"
INVOICE_TYPE_NORMAL = "NORMAL"
INVOICE_TYPES = (INVOICE_TYPE_POS, INVOICE_TYPE_NORMAL)

INVOICE_STATUS_DRAFT = "draft"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_REPORTED = "reported_dian"
INVOICE_STATUS_CANCELLED = "cancelled"
INVOICE_STATUSES = (
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_REPORTED,
    INVOICE_STATUS_CANCELLED,
)


class Invoice(db.Model):
    """
    Sale document.

    Immutable after creation except for ``status`` (and the cancellation
    audit columns). ``total_cents`` always equals the sum of its item line
    totals; ``tax_cents`` is the tax contained in that total.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_status_created", "status", "created_at"),
        db.Index("ix_invoices_seller_created", "seller_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(32), nullable=False, unique=True)
    invoice_type = db.Column(db.String(16), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_PAID, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set when the invoice was produced by executing a sales order
    sales_order_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    seller = db.relationship("User", foreign_keys=[seller_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "invoice_type": self.invoice_type,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "seller_id": self.seller_id,
            "seller_name": self.seller.full_name if self.seller else None,
            "created_by_user_id": self.created_by_user_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "sales_order_id": self.sales_order_id,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """Invoice line: price snapshot, discount and computed line total."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        db.CheckConstraint("discount_bps >= 0 AND discount_bps <= 10000", name="ck_invoice_items_discount_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_percentage": self.discount_bps / 100,
            "discount_bps": self.discount_bps,
            "tax_rate_bps": self.tax_rate_bps,
            "line_total_cents": self.line_total_cents,
        }


class CreditNote(db.Model):
    """
    Return against an invoice.

    Credit notes are additive negative records: the invoice keeps its
    original total and status. Net revenue = invoices - credit notes.
    """
    __tablename__ = "credit_notes"
    __table_args__ = (
        db.Index("ix_credit_notes_invoice_created", "invoice_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(32), nullable=False, unique=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False)
    reason = db.Column(db.String(500), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("credit_notes", lazy=True))
    created_by = db.relationship("User")
    items = db.relationship(
        "CreditNoteItem",
        back_populates="credit_note",
        order_by="CreditNoteItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "invoice_id": self.invoice_id,
            "reason": self.reason,
            "total_cents": self.total_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_by_email": self.created_by.email if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class CreditNoteItem(db.Model):
    __tablename__ = "credit_note_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_credit_note_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credit_note_id = db.Column(db.Integer, db.ForeignKey("credit_notes.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    credit_note = db.relationship("CreditNote", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_note_id": self.credit_note_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
