# Overview: Service-layer operations for products and categories.

"""
Products Service

Product stock is shared with the sale processor, so every edit of an existing
product goes through the store's transaction primitive instead of a blind
write; a manual edit never overwrites a concurrent sale's decrement.
"""
from __future__ import annotations

from typing import Optional

from ..models.records import CATEGORIES, PRODUCTS, Category, Product
from ..stores import DocumentNotFoundError
from ..validation import ConflictError
from .notification_service import SUCCESS

PRODUCT_MUTABLE_FIELDS = {
    "code", "name", "category_id", "cost_price", "sale_price",
    "stock", "min_stock", "unit", "status",
}
COST_FIELDS = ("cost_price",)


def _code_taken(store, code: str, exclude_id: Optional[str] = None) -> bool:
    wanted = code.strip().lower()
    for record in store.list(PRODUCTS):
        if record["id"] == exclude_id:
            continue
        if (record.get("code") or "").strip().lower() == wanted:
            return True
    return False


def product_view(record: dict, *, include_costs: bool) -> dict:
    """Public form of a product record; costs stripped unless allowed."""
    data = Product.from_dict(record).to_dict()
    if not include_costs:
        for key in COST_FIELDS:
            data.pop(key, None)
    return data


def list_products(ctx, records: Optional[list[dict]] = None) -> dict:
    if records is None:
        records = ctx.store.list(PRODUCTS)
    include_costs = ctx.can("can_view_costs")
    items = sorted(
        (product_view(r, include_costs=include_costs) for r in records),
        key=lambda p: (p["name"].lower(), p["id"] or ""),
    )
    return {"items": items, "count": len(items)}


def get_product(ctx, product_id: str) -> Optional[Product]:
    record = ctx.store.get(PRODUCTS, product_id)
    return Product.from_dict(record) if record is not None else None


def create_product(ctx, *, patch: dict) -> Product:
    """
    Create a product from a validated patch dict.

    Raises:
        ConflictError: If another product already uses the code
    """
    if _code_taken(ctx.store, patch["code"]):
        raise ConflictError(f"Product code {patch['code']} already exists")

    product = Product.from_dict({k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS})
    product.id = ctx.store.new_id()
    ctx.store.set(PRODUCTS, product.id, product.to_dict())
    ctx.notify(f"Product {product.name} added", SUCCESS)
    return product


def update_product(ctx, *, product_id: str, patch: dict) -> Product:
    """
    Apply a validated patch to an existing product atomically.

    Raises:
        DocumentNotFoundError: If the product does not exist
        ConflictError: If the new code is used by another product
    """
    patch = {k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS}
    if "code" in patch and _code_taken(ctx.store, patch["code"], exclude_id=product_id):
        raise ConflictError(f"Product code {patch['code']} already exists")

    def _op(txn):
        record = txn.get(PRODUCTS, product_id)
        if record is None:
            raise DocumentNotFoundError(f"Product {product_id} not found")
        if patch:
            txn.update(PRODUCTS, product_id, patch)
        return Product.from_dict({**record, **patch})

    product = ctx.store.run_transaction(_op)
    ctx.notify(f"Product {product.name} updated", SUCCESS)
    return product


def delete_product(ctx, *, product_id: str) -> bool:
    if ctx.store.get(PRODUCTS, product_id) is None:
        return False
    ctx.store.delete(PRODUCTS, product_id)
    ctx.notify("Product deleted", SUCCESS)
    return True


def list_categories(ctx) -> dict:
    items = [Category.from_dict(r).to_dict() for r in ctx.store.list(CATEGORIES)]
    items.sort(key=lambda c: c["name"].lower())
    return {"items": items, "count": len(items)}


def create_category(ctx, *, patch: dict) -> Category:
    category = Category.from_dict(patch)
    category.id = ctx.store.new_id()
    ctx.store.set(CATEGORIES, category.id, category.to_dict())
    ctx.notify(f"Category {category.name} added", SUCCESS)
    return category


def delete_category(ctx, *, category_id: str) -> bool:
    """Products keep their (now dangling) category reference."""
    if ctx.store.get(CATEGORIES, category_id) is None:
        return False
    ctx.store.delete(CATEGORIES, category_id)
    ctx.notify("Category deleted", SUCCESS)
    return True
