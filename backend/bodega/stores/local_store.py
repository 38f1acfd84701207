"""
Device-local durable store used by demo sessions.

``LocalKeyValueStore`` is the raw persistence: one serialized JSON array per
logical table, written and committed immediately. ``LocalDocumentStore`` keeps
the tables in memory (loaded once, synchronously) and writes every change
through to the key-value store. Transactions and batches are applied to
in-memory copies first and persisted in a single key-value commit; a failed
flush restores the previous in-memory tables.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LocalEntry
from .base import (
    DELETE,
    SET,
    UPDATE,
    DocumentNotFoundError,
    DocumentStore,
    StagedTransaction,
    StoreUnavailableError,
    sort_records,
)

logger = logging.getLogger(__name__)


def _json_dumps(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class LocalKeyValueStore:
    """Synchronous key -> serialized value storage scoped by a namespace."""

    def __init__(self, namespace: str = "bodega"):
        self.namespace = namespace

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}"

    def _entry(self, name: str) -> Optional[LocalEntry]:
        return (
            db.session.query(LocalEntry)
            .filter_by(key=self._key(name))
            .populate_existing()
            .first()
        )

    def get_item(self, name: str) -> Optional[str]:
        try:
            entry = self._entry(name)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailableError(f"local read of {name} failed") from exc
        return entry.value if entry is not None else None

    def set_item(self, name: str, value: str) -> None:
        self.set_items({name: value})

    def set_items(self, items: dict[str, str]) -> None:
        """Write several keys in one commit."""
        try:
            for name, value in items.items():
                entry = self._entry(name)
                if entry is None:
                    db.session.add(LocalEntry(key=self._key(name), value=value))
                else:
                    entry.value = value
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailableError("local write failed") from exc

    def remove_items(self, names: Iterable[str]) -> None:
        try:
            for name in names:
                entry = self._entry(name)
                if entry is not None:
                    db.session.delete(entry)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailableError("local delete failed") from exc


class LocalTransaction(StagedTransaction):
    def _read(self, collection: str, doc_id: str):
        return self.store.get(collection, doc_id), None

    def _apply(self) -> None:
        self.store._apply_writes(self.writes)


class LocalDocumentStore(DocumentStore):
    """Demo-mode store: in-memory tables written through to the local key-value store."""

    kind = "demo"

    def __init__(self, kv: LocalKeyValueStore, *, attempts: int = 1, backoff_base: float = 0.0):
        super().__init__(max_batch_writes=None, attempts=attempts, backoff_base=backoff_base)
        self.kv = kv
        self._tables: dict[str, dict[str, dict]] = {}
        self._lock = threading.RLock()

    def _table(self, collection: str) -> dict[str, dict]:
        if collection not in self._tables:
            raw = self.kv.get_item(collection)
            records = json.loads(raw) if raw else []
            self._tables[collection] = {
                str(r["id"]): {k: v for k, v in r.items() if k != "id"}
                for r in records
                if isinstance(r, dict) and r.get("id") is not None
            }
        return self._tables[collection]

    def load(self, collections: Iterable[str]) -> None:
        """Read the given tables from the key-value store (once per process)."""
        with self._lock:
            for collection in collections:
                self._table(collection)

    def forget(self) -> None:
        """Drop the in-memory tables; the next access reloads from storage."""
        with self._lock:
            self._tables = {}

    def wipe(self, collections: Iterable[str]) -> None:
        """Erase tables both in memory and in storage."""
        collections = list(collections)
        with self._lock:
            self.kv.remove_items(collections)
            for collection in collections:
                self._tables[collection] = {}
        self._publish(collections)

    def _serialize(self, collection: str) -> str:
        return _json_dumps([{"id": doc_id, **payload} for doc_id, payload in self._tables[collection].items()])

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            payload = self._table(collection).get(doc_id)
            if payload is None:
                return None
            return {**copy.deepcopy(payload), "id": doc_id}

    def list(self, collection: str, *, order_by: Optional[str] = None, descending: bool = False) -> list[dict]:
        with self._lock:
            records = [
                {**copy.deepcopy(payload), "id": doc_id}
                for doc_id, payload in self._table(collection).items()
            ]
        return sort_records(records, order_by, descending)

    def run_transaction(self, func):
        # Holding the lock for the whole read-stage-commit cycle serializes
        # demo transactions, so a local commit never conflicts.
        with self._lock:
            return super().run_transaction(func)

    def _begin(self) -> LocalTransaction:
        return LocalTransaction(self)

    def _commit_batch(self, writes) -> set[str]:
        with self._lock:
            return self._apply_writes(list(writes))

    def _apply_writes(self, writes: list[tuple[str, str, str, Optional[dict]]]) -> set[str]:
        touched = {collection for collection, _, _, _ in writes}
        staged = {collection: dict(self._table(collection)) for collection in touched}

        for collection, doc_id, op, data in writes:
            table = staged[collection]
            if op == SET:
                table[doc_id] = copy.deepcopy(data)
            elif op == UPDATE:
                if doc_id not in table:
                    raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist")
                table[doc_id] = {**table[doc_id], **copy.deepcopy(data)}
            elif op == DELETE:
                table.pop(doc_id, None)
            else:
                raise ValueError(f"Unknown write op: {op}")

        previous = {collection: self._tables[collection] for collection in touched}
        self._tables.update(staged)
        try:
            self.kv.set_items({collection: self._serialize(collection) for collection in touched})
        except StoreUnavailableError:
            self._tables.update(previous)
            logger.exception("Local flush failed; in-memory tables restored")
            raise
        return touched
