# Overview: Flask API routes for imports; parses input and returns JSON responses.

"""
Import Routes

Supports CSV, JSON, and Excel (.xlsx) uploads, or an already-parsed JSON body
{"headers": [...], "rows": [[...], ...], "mapping": {...}}. When no mapping
is supplied it is detected from the header names.
"""

import json

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..services import import_service
from ..services.import_service import ImportError


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _mapping_from_form():
    raw = request.form.get("mapping")
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ImportError("mapping must be valid JSON")


@imports_bp.post("/mapping")
@require_auth
@require_capability("can_edit_products")
def detect_mapping_route():
    data = request.get_json(silent=True) or {}
    headers = data.get("headers")
    if not isinstance(headers, list):
        return jsonify({"error": "headers must be a list"}), 400
    return jsonify({"mapping": import_service.auto_map_headers(headers)})


@imports_bp.post("/products")
@require_auth
@require_capability("can_edit_products")
def import_products_route():
    try:
        if "file" in request.files:
            file = request.files["file"]
            try:
                headers, rows = import_service.read_tabular(file.stream, file.filename or "")
            except ImportError as e:
                return jsonify({"error": str(e)}), 400
            except Exception:
                current_app.logger.exception("Failed to parse upload %s", file.filename)
                return jsonify({"error": "Failed to parse upload"}), 400
            mapping = _mapping_from_form()
        else:
            data = request.get_json(silent=True) or {}
            headers = data.get("headers")
            rows = data.get("rows")
            mapping = data.get("mapping")

        result = import_service.import_products(g.ctx, headers, rows, mapping)
    except ImportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Internal server error"}), 500

    status = 500 if result.errors else 201
    return jsonify(result.to_dict()), status
