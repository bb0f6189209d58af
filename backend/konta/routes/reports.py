from flask import Blueprint, g, jsonify, request

from konta.decorators import require_role, require_user
from konta.models.users import ROLE_ADMIN
from konta.services import reporting_service
from konta.time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise reporting_service.ReportError(f"{name} must be an ISO-8601 date")


@reports_bp.get("/summary")
@require_user
@require_role(ROLE_ADMIN)
def sales_summary_report():
    try:
        report = reporting_service.sales_summary(_date_arg("date_from"), _date_arg("date_to"))
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/sales-by-seller")
@require_user
@require_role(ROLE_ADMIN)
def sales_by_seller_report():
    try:
        rows = reporting_service.sales_by_seller(_date_arg("date_from"))
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    total = sum(r["total_sales_cents"] for r in rows)
    return jsonify({"sellers": rows, "total_sales_cents": total}), 200


@reports_bp.get("/sellers/<int:seller_id>/performance")
@require_user
def seller_performance_report(seller_id: int):
    # Sellers may only look at their own numbers
    if not g.current_user.is_admin and g.current_user.id != seller_id:
        return jsonify({"error": "Permission denied"}), 403

    try:
        today = _date_arg("today")
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        report = reporting_service.seller_performance(seller_id, today)
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 404
