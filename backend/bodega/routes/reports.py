# Overview: Flask API routes for the cash-box and dashboard reports.

from datetime import date

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..models.records import EXPENSES, PRODUCTS, SALES
from ..services import reporting_service
from ..time_utils import today_iso

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _day_param():
    day = request.args.get("date") or today_iso(g.ctx.config.utc_offset_minutes)
    try:
        date.fromisoformat(day)
    except ValueError:
        return None
    return day


@reports_bp.get("/cash-summary")
@require_auth
@require_capability("can_access_cashbox")
def cash_summary_route():
    """Query params: date (YYYY-MM-DD, default today on the business clock)."""
    day = _day_param()
    if day is None:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    return jsonify(reporting_service.cash_summary(
        g.data_session.collection(SALES),
        g.data_session.collection(EXPENSES),
        g.ctx.config,
        day,
    ))


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    """Profit figures need can_view_dashboard_stats."""
    day = _day_param()
    if day is None:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    return jsonify(reporting_service.dashboard_summary(
        g.data_session.collection(SALES),
        g.data_session.collection(PRODUCTS),
        g.ctx.config,
        day=day,
        include_profit=g.ctx.can("can_view_dashboard_stats"),
    ))
