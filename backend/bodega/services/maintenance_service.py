# Overview: Administrative bulk operations; history clears and the demo-only system reset.

from __future__ import annotations

import logging

from ..models.records import (
    CATEGORIES,
    CLIENT_PAYMENTS,
    CLIENTS,
    CONFIG,
    COUNTERS,
    EXPENSES,
    PRODUCTS,
    SALES,
    SUPPLIERS,
)
from ..validation import ConflictError
from .notification_service import SUCCESS, WARNING
from .settings_service import ensure_defaults

logger = logging.getLogger(__name__)

ALL_COLLECTIONS = (
    PRODUCTS,
    CATEGORIES,
    SALES,
    CLIENTS,
    CLIENT_PAYMENTS,
    SUPPLIERS,
    EXPENSES,
    CONFIG,
    COUNTERS,
)


def clear_collection(store, collection: str) -> int:
    """
    Delete every document of a collection in bounded batches.

    Returns the number of deleted documents.
    """
    ids = [record["id"] for record in store.list(collection)]
    size = store.max_batch_writes or len(ids) or 1
    for start in range(0, len(ids), size):
        batch = store.batch()
        for doc_id in ids[start:start + size]:
            batch.delete(collection, doc_id)
        batch.commit()
    logger.info("Cleared %d documents from %s (%s store)", len(ids), collection, store.kind)
    return len(ids)


def clear_sales_history(ctx) -> int:
    """Drop all sales. The sale number counter keeps running."""
    deleted = clear_collection(ctx.store, SALES)
    ctx.notify(f"Sales history cleared ({deleted} sales)", SUCCESS)
    return deleted


def clear_expenses_history(ctx) -> int:
    deleted = clear_collection(ctx.store, EXPENSES)
    ctx.notify(f"Expense history cleared ({deleted} expenses)", SUCCESS)
    return deleted


def reset_system(ctx) -> None:
    """
    Factory reset of the local demo data.

    Raises:
        ConflictError: Outside demo mode
    """
    if not ctx.is_demo:
        ctx.notify("Factory reset is disabled for cloud data", WARNING)
        raise ConflictError("System reset is only available in demo mode")

    ctx.store.wipe(ALL_COLLECTIONS)
    ensure_defaults(ctx.store)
    ctx.notify("System reset to factory defaults", SUCCESS)
