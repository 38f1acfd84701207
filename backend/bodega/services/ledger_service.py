# Overview: Client credit ledger; debt payments and the payment history.

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from .. import money
from ..models.records import CLIENT_PAYMENTS, CLIENTS, WALK_IN_CLIENT_ID, Client, ClientPayment
from ..stores import StoreError, StoreUnavailableError, TransactionConflictError
from ..time_utils import to_utc_z, utcnow
from .notification_service import ERROR, SUCCESS


class LedgerError(Exception):
    """Raised for client ledger errors."""

    def __init__(self, message: str, reason: str = "validation"):
        super().__init__(message)
        self.reason = reason


def _parse_amount(amount) -> Decimal:
    if isinstance(amount, bool):
        raise LedgerError("amount must be a number")
    try:
        value = money.to_decimal(amount)
    except ValueError:
        raise LedgerError("amount must be a number")
    if value <= 0:
        raise LedgerError("amount must be > 0")
    return value


def register_payment(ctx, client_id: str, amount) -> ClientPayment:
    """
    Apply a debt payment to a client.

    new_debt = max(0, debt - amount); any overpayment is absorbed. The debt
    update and the payment record commit together.
    """
    value = _parse_amount(amount)
    if not client_id:
        raise LedgerError("client_id is required")
    if client_id == WALK_IN_CLIENT_ID:
        raise LedgerError("The walk-in client does not carry debt", "policy")

    payment_id = ctx.store.new_id()

    def _op(txn):
        doc = txn.get(CLIENTS, client_id)
        if doc is None:
            raise LedgerError(f"Client {client_id} not found", "not_found")
        client = Client.from_dict(doc)
        new_debt = max(money.ZERO, money.sub(client.debt, value))
        payment = ClientPayment(
            id=payment_id,
            client_id=client_id,
            amount=value,
            date=to_utc_z(utcnow()),
            old_debt=client.debt,
            new_debt=new_debt,
        )
        txn.update(CLIENTS, client_id, {"debt": new_debt})
        txn.set(CLIENT_PAYMENTS, payment_id, payment.to_dict())
        return client, payment

    try:
        client, payment = ctx.store.run_transaction(_op)
    except LedgerError as e:
        ctx.notify(str(e), ERROR)
        raise
    except TransactionConflictError as e:
        ctx.notify("Payment not registered, the client changed meanwhile; try again", ERROR)
        raise LedgerError("Concurrent update, please retry", "conflict") from e
    except StoreUnavailableError as e:
        ctx.notify("Store unavailable, payment not registered", ERROR)
        raise LedgerError("Store unavailable", "unavailable") from e
    except StoreError as e:
        ctx.notify("Error registering payment", ERROR)
        raise LedgerError(str(e) or "Error registering payment", "unknown") from e

    ctx.notify(f"Payment of {money.round_money(value)} registered for {client.name}", SUCCESS)
    return payment


def list_payments(ctx, client_id: Optional[str] = None) -> list[ClientPayment]:
    """Payment history, newest first, optionally for a single client."""
    records = ctx.store.list(CLIENT_PAYMENTS, order_by="date", descending=True)
    payments = [ClientPayment.from_dict(r) for r in records]
    if client_id is not None:
        payments = [p for p in payments if p.client_id == client_id]
    return payments


def debt_summary(clients: list[dict]) -> dict:
    """Clients with outstanding debt (walk-in excluded) and the total owed."""
    debtors = []
    for record in clients:
        client = Client.from_dict(record)
        if client.is_walk_in or client.debt <= 0:
            continue
        debtors.append(client)
    debtors.sort(key=lambda c: c.debt, reverse=True)
    return {
        "total_debt": str(money.total(c.debt for c in debtors)),
        "clients": [
            {**c.to_dict(), "over_limit": c.debt > c.credit_limit}
            for c in debtors
        ],
    }
