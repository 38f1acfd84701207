# Overview: JSON error responses shared by the API routes.

from flask import jsonify

from .stores import (
    DocumentNotFoundError,
    StoreError,
    StoreUnavailableError,
    TransactionConflictError,
)


def store_error_response(e: StoreError):
    if isinstance(e, DocumentNotFoundError):
        return jsonify({"error": str(e) or "Not found"}), 404
    if isinstance(e, TransactionConflictError):
        return jsonify({"error": "Concurrent update, please retry", "retryable": True}), 409
    if isinstance(e, StoreUnavailableError):
        return jsonify({"error": "Store unavailable", "retryable": True}), 503
    return jsonify({"error": str(e) or "Store error"}), 500
