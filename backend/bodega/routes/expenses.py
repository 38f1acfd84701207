# Overview: Flask API routes for expenses; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_capability, require_owner
from ..models.records import EXPENSES, Expense
from ..responses import store_error_response
from ..services import expenses_service, maintenance_service
from ..stores import StoreError
from ..validation import (
    ValidationError,
    ValidationPolicy,
    enforce_rules_expense,
    validate_payload,
)

EXPENSE_POLICY = ValidationPolicy(
    writable_fields=set(expenses_service.EXPENSE_MUTABLE_FIELDS),
    required_on_create={"description", "amount"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
def list_expenses_route():
    return jsonify(expenses_service.list_expenses(g.ctx, g.data_session.collection(EXPENSES)))


@expenses_bp.post("")
@require_auth
@require_capability("can_access_cashbox")
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(record_cls=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = expenses_service.create_expense(g.ctx, patch=patch)
    except StoreError as e:
        return store_error_response(e)
    return jsonify(created.to_dict()), 201


@expenses_bp.delete("/<expense_id>")
@require_auth
@require_capability("can_delete_items")
def delete_expense_route(expense_id: str):
    try:
        deleted = expenses_service.delete_expense(g.ctx, expense_id=expense_id)
    except StoreError as e:
        return store_error_response(e)

    if not deleted:
        return jsonify({"error": "Expense not found"}), 404
    return jsonify({"ok": True})


@expenses_bp.delete("")
@require_auth
@require_owner
def clear_expenses_route():
    try:
        deleted = maintenance_service.clear_expenses_history(g.ctx)
    except StoreError as e:
        return store_error_response(e)
    return jsonify({"deleted": deleted})
