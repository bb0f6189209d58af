# backend/konta/routes/system.py
"""
Health endpoint for deployments.

Besides database reachability it reports the document numbering state and
whether the electronic invoice can be signed, since both only show up as
failures once a sale is attempted.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import DocumentSequence
from ..services import settings_service
from ..services.compliance import get_signer
from konta.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _database_check() -> dict:
    started = time.perf_counter()
    try:
        sequences = db.session.query(DocumentSequence).order_by(DocumentSequence.document_type).all()
    except SQLAlchemyError:
        current_app.logger.exception("Health check could not reach the database")
        return {"status": "unhealthy", "error": "Database error"}

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "next_numbers": {seq.document_type: seq.next_number for seq in sequences},
    }


def _invoicing_check() -> dict:
    cfg = current_app.config
    company = settings_service.get_company_settings()
    missing = [field for field in ("name", "nit", "resolution_number") if not company[field]]
    if not cfg.get("DIAN_TECHNICAL_KEY"):
        missing.append("DIAN_TECHNICAL_KEY")
    return {
        # Missing issuer data degrades XML output but does not stop sales
        "status": "degraded" if missing else "healthy",
        "missing_settings": missing,
        "environment": cfg.get("DIAN_ENVIRONMENT"),
        "signer_configured": get_signer().configured,
    }


@system_bp.get("/health")
def health():
    """200 while the database answers, 503 otherwise."""
    database = _database_check()
    ok = database["status"] == "healthy"

    return {
        "status": "healthy" if ok else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "invoicing": _invoicing_check() if ok else {"status": "unknown"},
        },
    }, 200 if ok else 503
