# Overview: Document numbering for invoices, credit notes, sales orders and purchases.

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence

DOC_INVOICE_POS = "INVOICE_POS"
DOC_INVOICE_NORMAL = "INVOICE_NORMAL"
DOC_CREDIT_NOTE = "CREDIT_NOTE"
DOC_SALES_ORDER = "SALES_ORDER"
DOC_PURCHASE = "PURCHASE"

PREFIXES = {
    DOC_INVOICE_POS: "POS",
    DOC_INVOICE_NORMAL: "FV",
    DOC_CREDIT_NOTE: "NC",
    DOC_SALES_ORDER: "PV",
    DOC_PURCHASE: "OC",
}


class DocumentSequenceError(Exception):
    """Raised when a document number cannot be allocated."""


def next_document_number(document_type: str, *, pad: int = 6) -> str:
    """
    Allocate the next number for ``document_type`` (e.g. "POS-000001").

    Runs inside the caller's transaction and never commits: if the caller
    rolls back, the number is released with it.
    """
    prefix = PREFIXES.get(document_type)
    if prefix is None:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{str(number).zfill(pad)}"
