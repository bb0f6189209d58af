from __future__ import annotations

from ..extensions import db
from konta.time_utils import to_utc_z, utcnow


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    WHY: Invoice, credit note, sales order and purchase numbers are allocated
    inside the same transaction as the document itself, so a rolled back
    sale never burns a number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
