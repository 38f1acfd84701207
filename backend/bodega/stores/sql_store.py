"""
Remote transactional document store on top of Flask-SQLAlchemy.

Each document is a row of ``documents`` carrying a version counter managed by
SQLAlchemy's ``version_id_col``. Transactions record the version of every
document they read and, at commit, re-read each touched row under a row lock;
if any version moved the whole transaction is rolled back and retried.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Document
from ..services.concurrency import lock_for_update
from .base import (
    DELETE,
    MISSING,
    SET,
    UPDATE,
    DocumentNotFoundError,
    DocumentStore,
    StagedTransaction,
    StoreError,
    StoreUnavailableError,
    TransactionConflictError,
    sort_records,
)

logger = logging.getLogger(__name__)


def _load(collection: str, doc_id: str, *, lock: bool = False) -> Optional[Document]:
    query = db.session.query(Document).filter_by(collection=collection, doc_id=doc_id)
    if lock:
        query = lock_for_update(query)
    return query.populate_existing().first()


def _current_version(collection: str, doc_id: str):
    return (
        db.session.query(Document.version_id)
        .filter_by(collection=collection, doc_id=doc_id)
        .scalar()
    )


class _PendingWrites:
    """Applies writes to ORM rows, remembering rows already touched in this unit."""

    def __init__(self):
        self._rows: dict[tuple[str, str], Optional[Document]] = {}

    def row(self, collection: str, doc_id: str) -> Optional[Document]:
        key = (collection, doc_id)
        if key not in self._rows:
            self._rows[key] = _load(collection, doc_id, lock=True)
        return self._rows[key]

    def apply(self, collection: str, doc_id: str, op: str, data: Optional[dict]) -> None:
        key = (collection, doc_id)
        doc = self.row(collection, doc_id)
        if op == SET:
            if doc is None:
                doc = Document(collection=collection, doc_id=doc_id, data=data)
                db.session.add(doc)
                self._rows[key] = doc
            else:
                doc.data = data
        elif op == UPDATE:
            if doc is None:
                raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist")
            doc.data = {**(doc.data or {}), **data}
        elif op == DELETE:
            if doc is not None:
                db.session.delete(doc)
                self._rows[key] = None
        else:
            raise ValueError(f"Unknown write op: {op}")


class SqlTransaction(StagedTransaction):
    def _read(self, collection: str, doc_id: str):
        with self.store._guard(f"read {collection}/{doc_id}"):
            doc = _load(collection, doc_id)
            if doc is None:
                return None, None
            return doc.as_record(), doc.version_id

    def _apply(self) -> None:
        with self.store._guard("commit transaction"):
            with db.session.no_autoflush:
                for (collection, doc_id), expected in self._reads.items():
                    if (collection, doc_id) in self._writes:
                        continue
                    if _current_version(collection, doc_id) != expected:
                        raise TransactionConflictError(f"{collection}/{doc_id} changed since it was read")

                pending = _PendingWrites()
                for collection, doc_id, op, data in self.writes:
                    doc = pending.row(collection, doc_id)
                    expected = self.read_version(collection, doc_id)
                    current = doc.version_id if doc is not None else None
                    if expected is not MISSING and current != expected:
                        raise TransactionConflictError(f"{collection}/{doc_id} changed since it was read")
                    pending.apply(collection, doc_id, op, data)

            db.session.flush()
            db.session.commit()


class SqlDocumentStore(DocumentStore):
    """Cloud-mode store: shared database, live subscriptions, bounded batches."""

    kind = "cloud"

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except StoreError:
            db.session.rollback()
            raise
        except (StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            raise TransactionConflictError(f"{action}: {exc}") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Remote store unavailable during %s: %s", action, exc)
            raise StoreUnavailableError(f"{action} failed") from exc

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._guard(f"get {collection}/{doc_id}"):
            doc = _load(collection, doc_id)
            return doc.as_record() if doc is not None else None

    def list(self, collection: str, *, order_by: Optional[str] = None, descending: bool = False) -> list[dict]:
        with self._guard(f"list {collection}"):
            docs = (
                db.session.query(Document)
                .filter_by(collection=collection)
                .order_by(Document.created_at.asc(), Document.doc_id.asc())
                .populate_existing()
                .all()
            )
            records = [doc.as_record() for doc in docs]
        return sort_records(records, order_by, descending)

    def _begin(self) -> SqlTransaction:
        return SqlTransaction(self)

    def _rollback(self) -> None:
        db.session.rollback()

    def _commit_batch(self, writes: Iterable[tuple[str, str, str, Optional[dict]]]) -> set[str]:
        touched: set[str] = set()
        with self._guard("commit batch"):
            pending = _PendingWrites()
            with db.session.no_autoflush:
                for collection, doc_id, op, data in writes:
                    pending.apply(collection, doc_id, op, data)
                    touched.add(collection)
            db.session.flush()
            db.session.commit()
        return touched
