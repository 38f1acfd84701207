# Overview: System health endpoint and the demo-only factory reset.

import time

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth, require_owner
from ..extensions import db
from ..models import Document, LocalEntry
from ..services import maintenance_service
from ..stores import StoreError
from ..responses import store_error_response
from ..time_utils import to_utc_z, utcnow
from ..validation import ConflictError

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def _check(name: str, func) -> dict:
    start_time = time.time()
    try:
        details = func()
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("%s health check failed", name)
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": f"{name} error",
        }


def check_remote_store_health() -> dict:
    return _check("Remote store", lambda: {"documents": db.session.query(Document).count()})


def check_local_store_health() -> dict:
    return _check("Local store", lambda: {"entries": db.session.query(LocalEntry).count()})


@system_bp.get("/health")
def health():
    """
    Health of both stores.

    Returns 200 when the remote store answers. An unreachable remote store
    reports 503; demo sessions keep working on the local store regardless.
    """
    start_time = time.time()
    remote = check_remote_store_health()
    local = check_local_store_health()

    status = "healthy"
    http_status = 200
    if remote["status"] == "unhealthy":
        status, http_status = "unhealthy", 503
    elif local["status"] == "unhealthy":
        status = "degraded"

    return {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {"remote_store": remote, "local_store": local},
    }, http_status


@system_bp.post("/reset")
@require_auth
@require_owner
def reset_route():
    """Factory reset; demo sessions only."""
    try:
        maintenance_service.reset_system(g.ctx)
        return jsonify({"ok": True})
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreError as e:
        return store_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reset system")
        return jsonify({"error": "Internal server error"}), 500
