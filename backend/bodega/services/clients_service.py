# Overview: Service-layer operations for clients and suppliers.

from __future__ import annotations

from typing import Optional

from ..models.records import CLIENTS, SUPPLIERS, WALK_IN_CLIENT_ID, Client, Supplier
from ..stores import DocumentNotFoundError
from ..validation import ConflictError
from .notification_service import SUCCESS

# Debt is owned by the sale processor and the ledger
CLIENT_MUTABLE_FIELDS = {"name", "identity_document", "phone", "credit_limit"}
SUPPLIER_MUTABLE_FIELDS = {"name", "contact", "phone", "email", "address"}


def list_clients(ctx, records: Optional[list[dict]] = None) -> dict:
    if records is None:
        records = ctx.store.list(CLIENTS)
    items = [Client.from_dict(r).to_dict() for r in records]
    # Walk-in client first, then alphabetical
    items.sort(key=lambda c: (c["id"] != WALK_IN_CLIENT_ID, c["name"].lower()))
    return {"items": items, "count": len(items)}


def get_client(ctx, client_id: str) -> Optional[Client]:
    record = ctx.store.get(CLIENTS, client_id)
    return Client.from_dict(record) if record is not None else None


def create_client(ctx, *, patch: dict) -> Client:
    client = Client.from_dict({k: v for k, v in patch.items() if k in CLIENT_MUTABLE_FIELDS})
    client.id = ctx.store.new_id()
    ctx.store.set(CLIENTS, client.id, client.to_dict())
    ctx.notify(f"Client {client.name} added", SUCCESS)
    return client


def update_client(ctx, *, client_id: str, patch: dict) -> Client:
    """Update contact data and credit limit; runs as a transaction so debt is never clobbered."""
    patch = {k: v for k, v in patch.items() if k in CLIENT_MUTABLE_FIELDS}

    def _op(txn):
        record = txn.get(CLIENTS, client_id)
        if record is None:
            raise DocumentNotFoundError(f"Client {client_id} not found")
        if patch:
            txn.update(CLIENTS, client_id, patch)
        return Client.from_dict({**record, **patch})

    client = ctx.store.run_transaction(_op)
    ctx.notify(f"Client {client.name} updated", SUCCESS)
    return client


def delete_client(ctx, *, client_id: str) -> bool:
    """
    Raises:
        ConflictError: For the walk-in client
    """
    if client_id == WALK_IN_CLIENT_ID:
        raise ConflictError("The walk-in client cannot be deleted")
    if ctx.store.get(CLIENTS, client_id) is None:
        return False
    ctx.store.delete(CLIENTS, client_id)
    ctx.notify("Client deleted", SUCCESS)
    return True


def list_suppliers(ctx) -> dict:
    items = [Supplier.from_dict(r).to_dict() for r in ctx.store.list(SUPPLIERS)]
    items.sort(key=lambda s: s["name"].lower())
    return {"items": items, "count": len(items)}


def create_supplier(ctx, *, patch: dict) -> Supplier:
    supplier = Supplier.from_dict({k: v for k, v in patch.items() if k in SUPPLIER_MUTABLE_FIELDS})
    supplier.id = ctx.store.new_id()
    ctx.store.set(SUPPLIERS, supplier.id, supplier.to_dict())
    ctx.notify(f"Supplier {supplier.name} added", SUCCESS)
    return supplier


def update_supplier(ctx, *, supplier_id: str, patch: dict) -> Supplier:
    record = ctx.store.get(SUPPLIERS, supplier_id)
    if record is None:
        raise DocumentNotFoundError(f"Supplier {supplier_id} not found")
    patch = {k: v for k, v in patch.items() if k in SUPPLIER_MUTABLE_FIELDS}
    if patch:
        ctx.store.update(SUPPLIERS, supplier_id, patch)
    ctx.notify("Supplier updated", SUCCESS)
    return Supplier.from_dict({**record, **patch})


def delete_supplier(ctx, *, supplier_id: str) -> bool:
    if ctx.store.get(SUPPLIERS, supplier_id) is None:
        return False
    ctx.store.delete(SUPPLIERS, supplier_id)
    ctx.notify("Supplier deleted", SUCCESS)
    return True
