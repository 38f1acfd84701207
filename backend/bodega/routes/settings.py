# Overview: Flask API routes for business settings (the AppConfig singleton).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_owner
from ..responses import store_error_response
from ..services import settings_service
from ..stores import StoreError
from ..validation import ValidationError

settings_bp = Blueprint("settings", __name__, url_prefix="/api/config")


@settings_bp.get("")
@require_auth
def get_config_route():
    return jsonify(g.ctx.config.to_dict())


@settings_bp.put("")
@require_auth
@require_owner
def save_config_route():
    """Replace the whole config document; omitted fields fall back to defaults."""
    try:
        config = settings_service.save_config(g.ctx, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StoreError as e:
        return store_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save config")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(config.to_dict())
