"""
Bulk product import.

Rows arrive loosely typed (cells straight from a spreadsheet) together with a
field -> header mapping. They are coerced into ImportRow records first, then
reconciled against the existing catalog:

- categories are matched case-insensitively by name; every distinct missing
  name is created once, before the products that reference it
- products are matched case-insensitively by code; matches are updated with
  the mapped fields only, everything else is created
- writes are committed in batches no larger than the store's per-commit
  ceiling, category creations included
"""

from __future__ import annotations

import csv
import io
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from openpyxl import load_workbook

from ..models.records import CATEGORIES, PRODUCTS, Category, Product
from ..stores import StoreError
from ..time_utils import utcnow
from .import_schemas import (
    COST_PRICE,
    IMPORT_FIELDS,
    NAME,
    REQUIRED_FIELDS,
    SALE_PRICE,
    STOCK,
    ImportRow,
    ProductRowSchema,
    auto_map_headers,
)
from .notification_service import ERROR, SUCCESS, WARNING

logger = logging.getLogger(__name__)

CATEGORY_COLORS = (
    "#3b82f6",
    "#ef4444",
    "#10b981",
    "#f59e0b",
    "#8b5cf6",
    "#ec4899",
    "#14b8a6",
    "#6366f1",
)

EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


class ImportError(ValueError):
    """Raised for import validation errors."""


@dataclass
class ImportResult:
    added: int = 0
    updated: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "updated": self.updated,
            "errors": self.errors,
            "skipped": self.skipped,
        }


def _cell_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _is_blank_row(row: Iterable) -> bool:
    return all(_cell_text(v) == "" for v in row)


def read_tabular(stream, filename: str) -> tuple[list[str], list[list]]:
    """Parse an uploaded CSV, JSON or Excel file into (headers, rows)."""
    ext = (filename or "").rsplit(".", 1)[-1].lower()

    if ext == "csv":
        text = stream.read()
        if isinstance(text, bytes):
            text = text.decode("utf-8-sig")
        data = [row for row in csv.reader(io.StringIO(text))]
    elif ext == "json":
        payload = json.load(stream)
        if isinstance(payload, dict) and "headers" in payload:
            return [_cell_text(h) for h in payload.get("headers") or []], list(payload.get("rows") or [])
        if isinstance(payload, dict):
            payload = payload.get("rows", [])
        if not isinstance(payload, list):
            raise ImportError("JSON upload must be a list of objects")
        headers: list[str] = []
        for record in payload:
            if not isinstance(record, dict):
                raise ImportError("JSON upload must be a list of objects")
            for key in record:
                if key not in headers:
                    headers.append(key)
        return headers, [[record.get(h) for h in headers] for record in payload]
    elif ext in EXCEL_EXTENSIONS:
        wb = load_workbook(stream, read_only=True, data_only=True)
        try:
            data = [list(row) for row in wb.active.iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        raise ImportError("Unsupported file format")

    if not data:
        return [], []
    headers = [_cell_text(h) for h in data[0]]
    rows = [row for row in data[1:] if not _is_blank_row(row)]
    return headers, rows


def resolve_mapping(headers: list, mapping: Optional[dict]) -> dict[str, str]:
    """Validate a field -> header mapping, auto-detecting it when absent."""
    if mapping is None:
        mapping = auto_map_headers(headers)
    if not isinstance(mapping, dict):
        raise ImportError("mapping must be an object")

    known_headers = {str(h) for h in headers}
    cleaned: dict[str, str] = {}
    for field_name, header in mapping.items():
        if field_name not in IMPORT_FIELDS:
            raise ImportError(f"Unknown import field: {field_name}")
        if header in (None, ""):
            continue
        if str(header) not in known_headers:
            raise ImportError(f"Column not found: {header}")
        cleaned[field_name] = str(header)

    missing = [f for f in REQUIRED_FIELDS if f not in cleaned]
    if missing:
        raise ImportError(f"Missing column mapping for: {', '.join(missing)}")
    return cleaned


def coerce_rows(headers: list, rows: list, mapping: dict[str, str]) -> tuple[list[ImportRow], int]:
    """Coerce raw rows; returns (rows, skipped) where skipped counts nameless rows."""
    schema = ProductRowSchema(headers, mapping, code_prefix=f"IMP-{utcnow():%Y%m%d%H%M%S}")
    coerced: list[ImportRow] = []
    skipped = 0
    for index, raw in enumerate(rows, start=1):
        try:
            row = schema.normalize_row(raw)
        except ValueError as e:
            raise ImportError(f"row {index}: {e}")
        if row is None:
            skipped += 1
            continue
        coerced.append(row)
    return coerced, skipped


def _patch_for(row: ImportRow, category_id: Optional[str]) -> dict:
    """Fields an existing product takes from a row (mapped fields only)."""
    patch: dict = {NAME: row.name}
    if SALE_PRICE in row.mapped:
        patch["sale_price"] = row.sale_price
    if COST_PRICE in row.mapped:
        patch["cost_price"] = row.cost_price
    if STOCK in row.mapped:
        patch["stock"] = row.stock
    if category_id is not None:
        patch["category_id"] = category_id
    return patch


def plan_writes(
    rows: list[ImportRow],
    categories: list[dict],
    products: list[dict],
    *,
    new_id,
) -> tuple[list[tuple[str, str, str, dict]], int, int]:
    """
    Reconcile rows against the catalog.

    Returns (writes, added, updated). Each write is (op, collection, id, data);
    category creations precede the first product that references them.
    """
    category_index = {
        (c.get("name") or "").strip().lower(): c["id"]
        for c in categories
        if (c.get("name") or "").strip()
    }
    fallback_category = categories[0]["id"] if categories else ""
    product_index = {
        (p.get("code") or "").strip().lower(): p["id"]
        for p in products
        if (p.get("code") or "").strip()
    }

    writes: list[tuple[str, str, str, dict]] = []
    added = updated = 0

    for row in rows:
        category_id: Optional[str] = None
        if row.category_name:
            key = row.category_name.lower()
            if key not in category_index:
                created = Category(id=new_id(), name=row.category_name, color=random.choice(CATEGORY_COLORS))
                category_index[key] = created.id
                writes.append(("set", CATEGORIES, created.id, created.to_dict()))
            category_id = category_index[key]

        code_key = row.code.lower()
        existing_id = None if row.code_generated else product_index.get(code_key)

        if existing_id is not None:
            writes.append(("update", PRODUCTS, existing_id, _patch_for(row, category_id)))
            updated += 1
            continue

        product = Product(
            id=new_id(),
            code=row.code,
            name=row.name,
            category_id=category_id if category_id is not None else fallback_category,
            cost_price=row.cost_price,
            sale_price=row.sale_price,
            stock=row.stock,
            min_stock=row.min_stock,
            unit=row.unit,
        )
        writes.append(("set", PRODUCTS, product.id, product.to_dict()))
        product_index[code_key] = product.id
        added += 1

    return writes, added, updated


def _chunks(items: list, size: Optional[int]):
    if not size:
        yield items
        return
    for start in range(0, len(items), size):
        yield items[start:start + size]


def reconcile_import(ctx, rows: list[ImportRow]) -> ImportResult:
    store = ctx.store
    categories = store.list(CATEGORIES)
    products = store.list(PRODUCTS)
    writes, added, updated = plan_writes(rows, categories, products, new_id=store.new_id)

    committed = 0
    try:
        for chunk in _chunks(writes, store.max_batch_writes):
            batch = store.batch()
            for op, collection, doc_id, data in chunk:
                if op == "set":
                    batch.set(collection, doc_id, data)
                else:
                    batch.update(collection, doc_id, data)
            batch.commit()
            committed += len(chunk)
            logger.info("Import batch committed (%d/%d writes)", committed, len(writes))
    except StoreError:
        logger.exception("Import failed after %d of %d writes", committed, len(writes))
        if committed:
            ctx.notify(f"Import interrupted; {committed} writes were already saved", WARNING)
        ctx.notify("Import failed", ERROR)
        return ImportResult(errors=len(rows))

    return ImportResult(added=added, updated=updated)


def import_products(ctx, headers: list, rows: list, mapping: Optional[dict] = None) -> ImportResult:
    """Coerce, reconcile and persist an import; returns the counts."""
    if not isinstance(headers, list) or not isinstance(rows, list):
        raise ImportError("headers and rows must be lists")
    resolved = resolve_mapping(headers, mapping)
    coerced, skipped = coerce_rows(headers, rows, resolved)

    if not coerced:
        result = ImportResult(skipped=skipped)
    else:
        result = reconcile_import(ctx, coerced)
        result.skipped = skipped

    if not result.errors:
        ctx.notify(
            f"Import finished: {result.added} added, {result.updated} updated",
            SUCCESS,
        )
    return result


