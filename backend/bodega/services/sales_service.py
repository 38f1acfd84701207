"""
Sale transaction processing.

A sale verifies stock, decrements it, records the sale and (for credit sales)
raises the client's debt as one atomic unit against whichever store backs the
session. All reads happen before any write; the store's transaction either
commits every staged write or none of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from .. import money
from ..models.records import (
    CLIENTS,
    COUNTERS,
    CREDIT,
    PAYMENT_METHODS,
    PRODUCTS,
    SALES,
    WALK_IN_CLIENT_ID,
    AppConfig,
    Client,
    LineItem,
    Product,
    Sale,
)
from ..stores import StoreError, StoreUnavailableError, TransactionConflictError
from ..time_utils import to_utc_z, utcnow
from .notification_service import ERROR, SUCCESS, WARNING

SALE_COUNTER_ID = "sales"
SALE_NUMBER_PREFIX = "V-"
SALE_NUMBER_PAD = 6


class SaleError(Exception):
    """Raised for sale operation errors."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    POLICY = "policy"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"

    def __init__(self, message: str, reason: str = UNKNOWN, details: dict | None = None):
        super().__init__(message)
        self.reason = reason
        self.details = details or {}


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass
class SaleDraft:
    """An unsaved sale as submitted by the checkout screen."""
    items: list[CartLine] = field(default_factory=list)
    payment_method: str = "cash_usd"
    client_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SaleDraft":
        if not isinstance(payload, dict):
            raise SaleError("Invalid JSON payload", SaleError.VALIDATION)

        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            raise SaleError("items must be a list", SaleError.VALIDATION)

        items = []
        for index, raw in enumerate(raw_items, start=1):
            if not isinstance(raw, dict):
                raise SaleError(f"item {index} is invalid", SaleError.VALIDATION)
            product_id = str(raw.get("product_id") or "").strip()
            quantity = raw.get("quantity")
            if not product_id:
                raise SaleError(f"item {index}: product_id is required", SaleError.VALIDATION)
            if isinstance(quantity, bool) or not isinstance(quantity, int):
                raise SaleError(f"item {index}: quantity must be an integer", SaleError.VALIDATION)
            items.append(CartLine(product_id=product_id, quantity=quantity))

        client_id = payload.get("client_id")
        return cls(
            items=items,
            payment_method=str(payload.get("payment_method") or "cash_usd"),
            client_id=str(client_id) if client_id not in (None, "") else None,
        )


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    tax_amount: Optional[Decimal]
    total: Decimal
    total_local: Decimal
    exchange_rate: Decimal


def compute_totals(items: list[LineItem], config: AppConfig) -> SaleTotals:
    """Exact totals of a cart under the given config snapshot."""
    subtotal = money.total(money.mul(item.sale_price, item.quantity) for item in items)
    tax_amount = money.percent(subtotal, config.tax_rate) if config.tax_rate > 0 else None
    total = money.add(subtotal, tax_amount or 0)
    return SaleTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=total,
        total_local=money.mul(total, config.exchange_rate),
        exchange_rate=config.exchange_rate,
    )


def change_due(total: Decimal, tendered, *, exchange_rate=1) -> Decimal:
    """Change for a cash tender given in a currency at exchange_rate per hard-currency unit."""
    return money.sub(tendered, money.mul(total, exchange_rate))


def format_sale_number(sequence: int) -> str:
    return f"{SALE_NUMBER_PREFIX}{sequence:0{SALE_NUMBER_PAD}d}"


def _validate_draft(draft: SaleDraft) -> None:
    if not draft.items:
        raise SaleError("Cannot record a sale with no items", SaleError.VALIDATION)
    for line in draft.items:
        if line.quantity <= 0:
            raise SaleError(
                f"Quantity for product {line.product_id} must be positive",
                SaleError.VALIDATION,
                details={"product_id": line.product_id, "quantity": line.quantity},
            )
    if draft.payment_method not in PAYMENT_METHODS:
        raise SaleError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            SaleError.VALIDATION,
        )
    if draft.payment_method == CREDIT and draft.client_id == WALK_IN_CLIENT_ID:
        raise SaleError("Credit sales require a registered client", SaleError.POLICY)


def _requested_quantities(draft: SaleDraft) -> dict[str, int]:
    requested: dict[str, int] = {}
    for line in draft.items:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
    return requested


def record_sale(ctx, draft: SaleDraft) -> Sale:
    """
    Persist a sale with a fresh id and sequence number, or fail without effects.

    Raises SaleError whose reason tells not-found, insufficient-stock, conflict
    and unavailability apart.
    """
    _validate_draft(draft)
    config = ctx.config
    requested = _requested_quantities(draft)
    sale_id = ctx.store.new_id()

    def _op(txn):
        products: dict[str, Product] = {}
        for product_id, quantity in requested.items():
            doc = txn.get(PRODUCTS, product_id)
            if doc is None:
                raise SaleError(
                    f"Product {product_id} not found",
                    SaleError.NOT_FOUND,
                    details={"product_id": product_id},
                )
            product = Product.from_dict(doc)
            if not config.enable_negative_stock and product.stock < quantity:
                raise SaleError(
                    f"Insufficient stock for {product.name}",
                    SaleError.INSUFFICIENT_STOCK,
                    details={
                        "product_id": product_id,
                        "name": product.name,
                        "requested_quantity": quantity,
                        "on_hand": product.stock,
                    },
                )
            products[product_id] = product

        client = None
        if draft.payment_method == CREDIT and draft.client_id:
            client_doc = txn.get(CLIENTS, draft.client_id)
            if client_doc is None:
                raise SaleError(
                    f"Client {draft.client_id} not found",
                    SaleError.NOT_FOUND,
                    details={"client_id": draft.client_id},
                )
            client = Client.from_dict(client_doc)

        counter = txn.get(COUNTERS, SALE_COUNTER_ID) or {}
        sequence = money.to_int(counter.get("value")) + 1

        # Writes start here
        for product_id, quantity in requested.items():
            new_stock = money.to_int(money.sub(products[product_id].stock, quantity))
            txn.update(PRODUCTS, product_id, {"stock": new_stock})

        items = []
        for line in draft.items:
            product = products[line.product_id]
            items.append(LineItem(
                product_id=line.product_id,
                name=product.name,
                quantity=line.quantity,
                sale_price=product.sale_price,
                cost_price=product.cost_price,
                unit=product.unit,
            ))

        totals = compute_totals(items, config)
        sale = Sale(
            id=sale_id,
            number=format_sale_number(sequence),
            date=to_utc_z(utcnow()),
            subtotal=totals.subtotal,
            total=totals.total,
            total_local=totals.total_local,
            exchange_rate=totals.exchange_rate,
            payment_method=draft.payment_method,
            client_id=draft.client_id,
            items=items,
            tax_amount=totals.tax_amount,
        )
        txn.set(SALES, sale_id, sale.to_dict())
        txn.set(COUNTERS, SALE_COUNTER_ID, {"value": sequence})

        debt = None
        if client is not None:
            debt = money.add(client.debt, sale.total)
            txn.update(CLIENTS, client.id, {"debt": debt})
        return sale, client, debt

    try:
        sale, client, debt = ctx.store.run_transaction(_op)
    except SaleError as e:
        ctx.notify(str(e), ERROR)
        raise
    except TransactionConflictError as e:
        ctx.notify("Sale could not be recorded, stock changed meanwhile; try again", ERROR)
        raise SaleError("Concurrent update, please retry", SaleError.CONFLICT) from e
    except StoreUnavailableError as e:
        ctx.notify("Store unavailable, sale not recorded", ERROR)
        raise SaleError("Store unavailable", SaleError.UNAVAILABLE) from e
    except StoreError as e:
        ctx.notify("Error recording sale", ERROR)
        raise SaleError(str(e) or "Error recording sale", SaleError.UNKNOWN) from e

    ctx.notify(f"Sale {sale.number} recorded", SUCCESS)
    if client is not None and debt > client.credit_limit:
        ctx.notify(
            f"{client.name} is over their credit limit ({money.round_money(debt)} > {money.round_money(client.credit_limit)})",
            WARNING,
        )
    return sale


def get_sale(ctx, sale_id: str) -> Optional[Sale]:
    doc = ctx.store.get(SALES, sale_id)
    return Sale.from_dict(doc) if doc is not None else None


def sale_view(record: dict, *, include_costs: bool) -> dict:
    """Public form of a sale record; line-item costs stripped unless allowed."""
    data = Sale.from_dict(record).to_dict()
    if not include_costs:
        data["items"] = [
            {k: v for k, v in item.items() if k != "cost_price"}
            for item in data["items"]
        ]
    return data
