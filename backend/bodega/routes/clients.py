# Overview: Flask API routes for clients, their debt payments and suppliers.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability, require_owner
from ..models.records import CLIENTS, Client, Supplier
from ..responses import store_error_response
from ..services import clients_service, ledger_service
from ..services.ledger_service import LedgerError
from ..stores import StoreError
from ..validation import (
    ConflictError,
    ValidationError,
    ValidationPolicy,
    enforce_rules_client,
    validate_payload,
)

# debt only moves through sales and payments
CLIENT_POLICY = ValidationPolicy(
    writable_fields=set(clients_service.CLIENT_MUTABLE_FIELDS),
    required_on_create={"name"},
)

SUPPLIER_POLICY = ValidationPolicy(
    writable_fields=set(clients_service.SUPPLIER_MUTABLE_FIELDS),
    required_on_create={"name"},
)

LEDGER_ERROR_STATUS = {
    "validation": 400,
    "policy": 400,
    "not_found": 404,
    "conflict": 409,
    "unavailable": 503,
}

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@clients_bp.get("")
@require_auth
def list_clients_route():
    return jsonify(clients_service.list_clients(g.ctx, g.data_session.collection(CLIENTS)))


@clients_bp.get("/debts")
@require_auth
def debts_route():
    """Outstanding debt per client, walk-in client excluded."""
    return jsonify(ledger_service.debt_summary(g.data_session.collection(CLIENTS)))


@clients_bp.get("/<client_id>")
@require_auth
def get_client_route(client_id: str):
    try:
        client = clients_service.get_client(g.ctx, client_id)
    except StoreError as e:
        return store_error_response(e)
    if client is None:
        return jsonify({"error": "Client not found"}), 404
    return jsonify(client.to_dict())


@clients_bp.post("")
@require_auth
@require_capability("can_manage_clients")
def create_client_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(record_cls=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
        enforce_rules_client(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = clients_service.create_client(g.ctx, patch=patch)
    except StoreError as e:
        return store_error_response(e)
    return jsonify(created.to_dict()), 201


@clients_bp.put("/<client_id>")
@require_auth
@require_capability("can_manage_clients")
def update_client_route(client_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(record_cls=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
        enforce_rules_client(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        updated = clients_service.update_client(g.ctx, client_id=client_id, patch=patch)
    except StoreError as e:
        return store_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(updated.to_dict())


@clients_bp.delete("/<client_id>")
@require_auth
@require_capability("can_delete_items")
def delete_client_route(client_id: str):
    try:
        deleted = clients_service.delete_client(g.ctx, client_id=client_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreError as e:
        return store_error_response(e)

    if not deleted:
        return jsonify({"error": "Client not found"}), 404
    return jsonify({"ok": True})


@clients_bp.post("/<client_id>/payments")
@require_auth
@require_capability("can_manage_clients")
def register_payment_route(client_id: str):
    """Body: {"amount": "12.50"}. Overpayment leaves the debt at zero."""
    data = request.get_json(silent=True) or {}
    try:
        payment = ledger_service.register_payment(g.ctx, client_id, data.get("amount"))
    except LedgerError as e:
        return jsonify({"error": str(e), "reason": e.reason}), LEDGER_ERROR_STATUS.get(e.reason, 500)
    except Exception:
        current_app.logger.exception("Failed to register payment")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"payment": payment.to_dict()}), 201


@clients_bp.get("/<client_id>/payments")
@require_auth
def list_payments_route(client_id: str):
    try:
        payments = ledger_service.list_payments(g.ctx, client_id)
    except StoreError as e:
        return store_error_response(e)
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})


@suppliers_bp.get("")
@require_auth
@require_owner
def list_suppliers_route():
    return jsonify(clients_service.list_suppliers(g.ctx))


@suppliers_bp.post("")
@require_auth
@require_owner
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(record_cls=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        created = clients_service.create_supplier(g.ctx, patch=patch)
    except StoreError as e:
        return store_error_response(e)
    return jsonify(created.to_dict()), 201


@suppliers_bp.put("/<supplier_id>")
@require_auth
@require_owner
def update_supplier_route(supplier_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(record_cls=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        updated = clients_service.update_supplier(g.ctx, supplier_id=supplier_id, patch=patch)
    except StoreError as e:
        return store_error_response(e)
    return jsonify(updated.to_dict())


@suppliers_bp.delete("/<supplier_id>")
@require_auth
@require_owner
def delete_supplier_route(supplier_id: str):
    try:
        deleted = clients_service.delete_supplier(g.ctx, supplier_id=supplier_id)
    except StoreError as e:
        return store_error_response(e)

    if not deleted:
        return jsonify({"error": "Supplier not found"}), 404
    return jsonify({"ok": True})
