# Overview: Service-layer operations for expenses.

from __future__ import annotations

from typing import Optional

from ..models.records import EXPENSES, Expense
from ..time_utils import to_utc_z, utcnow
from .notification_service import SUCCESS

EXPENSE_MUTABLE_FIELDS = {"description", "amount", "category", "date", "payment_method"}


def list_expenses(ctx, records: Optional[list[dict]] = None) -> dict:
    if records is None:
        records = ctx.store.list(EXPENSES, order_by="date", descending=True)
    items = [Expense.from_dict(r).to_dict() for r in records]
    return {"items": items, "count": len(items)}


def create_expense(ctx, *, patch: dict) -> Expense:
    expense = Expense.from_dict({k: v for k, v in patch.items() if k in EXPENSE_MUTABLE_FIELDS})
    if not expense.date:
        expense.date = to_utc_z(utcnow())
    expense.id = ctx.store.new_id()
    ctx.store.set(EXPENSES, expense.id, expense.to_dict())
    ctx.notify("Expense recorded", SUCCESS)
    return expense


def delete_expense(ctx, *, expense_id: str) -> bool:
    if ctx.store.get(EXPENSES, expense_id) is None:
        return False
    ctx.store.delete(EXPENSES, expense_id)
    ctx.notify("Expense deleted", SUCCESS)
    return True
