# Overview: Cash-box and dashboard reports computed from the session's collections.

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from .. import money
from ..models.records import PAYMENT_METHODS, AppConfig, Expense, Product, Sale
from ..time_utils import day_of, today_iso


def _fmt(value: Decimal) -> str:
    return str(money.round_money(value))


def _on_day(records: list[dict], day: str, utc_offset_minutes: int = 0) -> list[dict]:
    return [r for r in records if day_of(r.get("date"), utc_offset_minutes) == day]


def _converted(amount: Decimal, config: AppConfig) -> dict:
    """Local and (when shown) secondary currency equivalents of a hard-currency amount."""
    data = {
        "amount": _fmt(amount),
        "local": _fmt(money.mul(amount, config.exchange_rate)),
    }
    if config.show_secondary_currency:
        data["secondary"] = _fmt(money.mul(amount, config.secondary_exchange_rate))
    return data


def sale_cost(sale: Sale) -> Decimal:
    return money.total(money.mul(item.cost_price, item.quantity) for item in sale.items)


def cash_summary(sales: list[dict], expenses: list[dict], config: AppConfig, day: str) -> dict:
    """
    Cash-box close for one business day (YYYY-MM-DD).

    Timestamps are stored in UTC and bucketed by the business clock
    (config.utc_offset_minutes).

    Sales are grouped by payment method; credit sales are listed separately
    because no money was collected for them.
    """
    day_sales = [Sale.from_dict(r) for r in _on_day(sales, day, config.utc_offset_minutes)]
    day_expenses = [Expense.from_dict(r) for r in _on_day(expenses, day, config.utc_offset_minutes)]

    by_method = {method: money.ZERO for method in PAYMENT_METHODS}
    for sale in day_sales:
        by_method[sale.payment_method] = money.add(by_method.get(sale.payment_method, 0), sale.total)

    collected = money.total(v for k, v in by_method.items() if k != "credit")
    spent = money.total(e.amount for e in day_expenses)
    net = money.sub(collected, spent)

    return {
        "date": day,
        "sales_count": len(day_sales),
        "expenses_count": len(day_expenses),
        "by_method": {k: _converted(v, config) for k, v in by_method.items()},
        "total_sales": _converted(collected, config),
        "credit_sales": _converted(by_method.get("credit", money.ZERO), config),
        "total_expenses": _converted(spent, config),
        "net_balance": _converted(net, config),
        "currency_code": config.currency_code,
        "secondary_currency_code": config.secondary_currency_code,
    }


def low_stock(products: list[dict]) -> list[dict]:
    """Active products at or below their reorder threshold, emptiest first."""
    items = [Product.from_dict(r) for r in products]
    flagged = [p for p in items if p.is_low_stock]
    flagged.sort(key=lambda p: (p.stock, p.name.lower()))
    return [
        {"id": p.id, "code": p.code, "name": p.name, "stock": p.stock, "min_stock": p.min_stock, "unit": p.unit}
        for p in flagged
    ]


def _daily_totals(sales: list[dict], today: date, utc_offset_minutes: int = 0, days: int = 7) -> list[dict]:
    series = []
    for offset in range(days - 1, -1, -1):
        day = (today - timedelta(days=offset)).isoformat()
        total = money.total(Sale.from_dict(r).total for r in _on_day(sales, day, utc_offset_minutes))
        series.append({"date": day, "total": _fmt(total)})
    return series


def product_performance(sales: list[dict], products: list[dict], limit: int = 5) -> dict:
    sold: dict[str, int] = {}
    for record in sales:
        for item in Sale.from_dict(record).items:
            sold[item.product_id] = sold.get(item.product_id, 0) + item.quantity

    ranked = [
        {"id": p.id, "name": p.name, "sold_quantity": sold.get(p.id, 0)}
        for p in (Product.from_dict(r) for r in products)
        if p.is_active
    ]
    top = sorted(ranked, key=lambda r: r["sold_quantity"], reverse=True)[:limit]
    least = sorted(ranked, key=lambda r: r["sold_quantity"])[:limit]
    return {
        "top_selling": [r for r in top if r["sold_quantity"] > 0],
        "least_selling": least,
    }


def dashboard_summary(
    sales: list[dict],
    products: list[dict],
    config: AppConfig,
    *,
    day: Optional[str] = None,
    include_profit: bool = True,
) -> dict:
    offset = config.utc_offset_minutes
    today = date.fromisoformat(day or today_iso(offset))
    day = today.isoformat()
    day_sales = [Sale.from_dict(r) for r in _on_day(sales, day, offset)]

    total = money.total(s.total for s in day_sales)
    result = {
        "date": day,
        "sales_count": len(day_sales),
        "total_sales": _converted(total, config),
        "low_stock_count": len(low_stock(products)),
        "last_7_days": _daily_totals(sales, today, offset),
        "performance": product_performance(sales, products),
    }
    if include_profit:
        profit = money.total(money.sub(s.total, sale_cost(s)) for s in day_sales)
        result["profit"] = _converted(profit, config)
    return result
