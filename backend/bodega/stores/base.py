"""
Document store capability shared by the local and remote back ends.

Both implementations expose the same surface: document get/list/add/set/
update/delete, optimistic multi-document transactions, bounded write batches
and collection subscriptions that deliver a full snapshot on every change.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from ..models.records import encode_value
from ..services.concurrency import run_with_retry

logger = logging.getLogger(__name__)

SET = "set"
UPDATE = "update"
DELETE = "delete"

MISSING = object()


class StoreError(Exception):
    """Base class for store failures."""


class StoreUnavailableError(StoreError):
    """The backing database could not be reached or refused the operation."""


class TransactionConflictError(StoreError):
    """A document read inside a transaction changed before the commit."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""


class BatchLimitExceededError(StoreError):
    """A write batch grew past the store's per-commit ceiling."""


class TransactionStateError(StoreError):
    """A transaction was used out of order (read after write, reuse after commit)."""


def clean_payload(data: dict) -> dict:
    """Stored form of a document payload: JSON-safe, without its id."""
    payload = encode_value(dict(data or {}))
    payload.pop("id", None)
    return payload


def _sort_key(value: Any):
    # None sorts first, numbers before strings so mixed payloads never raise
    if value is None:
        return (0, "")
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def sort_records(records: list[dict], order_by: Optional[str], descending: bool) -> list[dict]:
    if not order_by:
        return records
    return sorted(records, key=lambda r: _sort_key(r.get(order_by)), reverse=descending)


class Subscription:
    """Handle for a live collection listener; call it (or cancel()) to stop."""

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        on_snapshot: Callable[[list[dict]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ):
        self.store = store
        self.collection = collection
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.order_by = order_by
        self.descending = descending
        self.active = True

    def deliver(self) -> None:
        if not self.active:
            return
        try:
            snapshot = self.store.list(self.collection, order_by=self.order_by, descending=self.descending)
        except StoreError as exc:
            self.fail(exc)
            return
        if self.active:
            self.on_snapshot(snapshot)

    def fail(self, exc: Exception) -> None:
        if not self.active:
            return
        if self.on_error is not None:
            self.on_error(exc)
        else:
            logger.warning("Subscription to %s failed: %s", self.collection, exc)

    def cancel(self) -> None:
        self.active = False
        self.store._remove_subscription(self)

    __call__ = cancel


class StagedTransaction:
    """
    Read-then-write unit of work.

    Reads record the version they observed; writes are only staged and are
    folded per document, so each document is written at most once on commit.
    All reads must happen before the first write.
    """

    def __init__(self, store: "DocumentStore"):
        self.store = store
        self._reads: dict[tuple[str, str], Any] = {}
        self._writes: dict[tuple[str, str], tuple[str, Optional[dict]]] = {}
        self._closed = False

    # -- implemented by back ends ---------------------------------------------
    def _read(self, collection: str, doc_id: str) -> tuple[Optional[dict], Any]:
        raise NotImplementedError

    def _apply(self) -> None:
        raise NotImplementedError

    # -- public API -----------------------------------------------------------
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        self._check_open()
        if self._writes:
            raise TransactionStateError("transaction reads must happen before writes")
        record, version = self._read(collection, doc_id)
        self._reads[(collection, doc_id)] = version
        return copy.deepcopy(record)

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._stage(collection, doc_id, SET, clean_payload(data))

    def update(self, collection: str, doc_id: str, patch: dict) -> None:
        self._stage(collection, doc_id, UPDATE, clean_payload(patch))

    def delete(self, collection: str, doc_id: str) -> None:
        self._stage(collection, doc_id, DELETE, None)

    def read_version(self, collection: str, doc_id: str) -> Any:
        return self._reads.get((collection, doc_id), MISSING)

    @property
    def writes(self) -> list[tuple[str, str, str, Optional[dict]]]:
        return [(c, d, op, data) for (c, d), (op, data) in self._writes.items()]

    def commit(self) -> set[str]:
        """Apply staged writes atomically; returns the touched collections."""
        self._check_open()
        self._closed = True
        if self._writes:
            self._apply()
        return {collection for collection, _ in self._writes}

    def _check_open(self) -> None:
        if self._closed:
            raise TransactionStateError("transaction already committed")

    def _stage(self, collection: str, doc_id: str, op: str, data: Optional[dict]) -> None:
        self._check_open()
        key = (collection, doc_id)
        previous = self._writes.get(key)
        if previous is not None and op == UPDATE:
            prev_op, prev_data = previous
            if prev_op == DELETE:
                raise DocumentNotFoundError(f"{collection}/{doc_id} is deleted in this transaction")
            op = prev_op
            data = {**(prev_data or {}), **data}
        self._writes[key] = (op, data)


class WriteBatch:
    """Blind writes committed together, bounded by the store's batch ceiling."""

    def __init__(self, store: "DocumentStore", limit: Optional[int]):
        self.store = store
        self.limit = limit
        self._writes: list[tuple[str, str, str, Optional[dict]]] = []

    def __len__(self) -> int:
        return len(self._writes)

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._add(collection, doc_id, SET, clean_payload(data))

    def update(self, collection: str, doc_id: str, patch: dict) -> None:
        self._add(collection, doc_id, UPDATE, clean_payload(patch))

    def delete(self, collection: str, doc_id: str) -> None:
        self._add(collection, doc_id, DELETE, None)

    def commit(self) -> None:
        if not self._writes:
            return
        touched = self.store._commit_batch(self._writes)
        self._writes = []
        self.store._publish(touched)

    def _add(self, collection: str, doc_id: str, op: str, data: Optional[dict]) -> None:
        if self.limit is not None and len(self._writes) >= self.limit:
            raise BatchLimitExceededError(f"batch exceeds {self.limit} writes")
        self._writes.append((collection, doc_id, op, data))


class DocumentStore:
    """Common behaviour of the local and remote stores."""

    kind = "abstract"

    def __init__(
        self,
        *,
        max_batch_writes: Optional[int] = None,
        attempts: int = 3,
        backoff_base: float = 0.05,
    ):
        self.max_batch_writes = max_batch_writes
        self.attempts = attempts
        self.backoff_base = backoff_base
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._subscriptions_lock = threading.Lock()

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    # -- document API ---------------------------------------------------------
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def list(self, collection: str, *, order_by: Optional[str] = None, descending: bool = False) -> list[dict]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        batch = self.batch()
        batch.set(collection, doc_id, data)
        batch.commit()

    def update(self, collection: str, doc_id: str, patch: dict) -> None:
        batch = self.batch()
        batch.update(collection, doc_id, patch)
        batch.commit()

    def delete(self, collection: str, doc_id: str) -> None:
        batch = self.batch()
        batch.delete(collection, doc_id)
        batch.commit()

    def add(self, collection: str, data: dict) -> str:
        doc_id = self.new_id()
        self.set(collection, doc_id, data)
        return doc_id

    def batch(self) -> WriteBatch:
        return WriteBatch(self, self.max_batch_writes)

    # -- transactions ---------------------------------------------------------
    def _begin(self) -> StagedTransaction:
        raise NotImplementedError

    def _rollback(self) -> None:
        """Discard whatever a failed attempt left behind."""

    def _commit_batch(self, writes: Iterable[tuple[str, str, str, Optional[dict]]]) -> set[str]:
        raise NotImplementedError

    def run_transaction(self, func: Callable[[StagedTransaction], Any]) -> Any:
        """
        Run func(txn) and commit its staged writes atomically.

        func may be invoked more than once: on a TransactionConflictError the
        attempt is discarded and retried with fresh reads. Any other exception
        aborts without applying anything.
        """
        def _attempt():
            txn = self._begin()
            try:
                result = func(txn)
                touched = txn.commit()
            except Exception:
                self._rollback()
                raise
            self._publish(touched)
            return result

        return run_with_retry(
            _attempt,
            attempts=self.attempts,
            backoff_base=self.backoff_base,
            retry_on=(TransactionConflictError,),
            on_retry=self._on_conflict,
        )

    def _on_conflict(self, exc: Exception, attempt: int) -> None:
        logger.info("Transaction conflict on %s store (attempt %d): %s", self.kind, attempt + 1, exc)

    # -- subscriptions --------------------------------------------------------
    def subscribe(
        self,
        collection: str,
        on_snapshot: Callable[[list[dict]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """Register a listener; it immediately receives the current snapshot."""
        subscription = Subscription(self, collection, on_snapshot, on_error, order_by, descending)
        with self._subscriptions_lock:
            self._subscriptions.setdefault(collection, []).append(subscription)
        subscription.deliver()
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            listeners = self._subscriptions.get(subscription.collection, [])
            if subscription in listeners:
                listeners.remove(subscription)

    def subscription_count(self, collection: Optional[str] = None) -> int:
        with self._subscriptions_lock:
            if collection is not None:
                return len(self._subscriptions.get(collection, []))
            return sum(len(v) for v in self._subscriptions.values())

    def _publish(self, collections: Iterable[str]) -> None:
        for collection in sorted(set(collections)):
            with self._subscriptions_lock:
                listeners = list(self._subscriptions.get(collection, []))
            for subscription in listeners:
                subscription.deliver()
