# Overview: Flask API routes for data sessions; identity in, session token out.

"""
Session routes.

POST /api/session takes the identity claims issued by the identity provider
(uid, name, role, demo flag) and starts a data session: demo identities work
on the local store, everyone else subscribes to the remote collections.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..models.records import PRODUCTS, SALES
from ..services import session_service
from ..services.products_service import product_view
from ..services.sales_service import sale_view
from ..validation import ValidationError

session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.post("")
def open_session_route():
    claims = request.get_json(silent=True)
    try:
        token, data_session = session_service.open_session(claims)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "token": token,
        "session": data_session.to_dict(),
        "config": data_session.config.to_dict(),
    }), 201


@session_bp.get("")
@require_auth
def session_status_route():
    return jsonify({
        "session": g.data_session.to_dict(),
        "config": g.ctx.config.to_dict(),
    })


@session_bp.delete("")
@require_auth
def close_session_route():
    session_service.close_session(g.token)
    return jsonify({"ok": True})


@session_bp.get("/snapshot")
@require_auth
def snapshot_route():
    """Collections as last delivered to this session (cost prices gated)."""
    data = g.data_session.snapshot()
    include_costs = g.ctx.can("can_view_costs")
    data[PRODUCTS] = [product_view(r, include_costs=include_costs) for r in data[PRODUCTS]]
    data[SALES] = [sale_view(r, include_costs=include_costs) for r in data[SALES]]
    return jsonify(data)


@session_bp.get("/notifications")
@require_auth
def notifications_route():
    return jsonify({"items": [n.to_dict() for n in g.data_session.notifier.recent()]})
