# Overview: Store registry; one remote and one local document store per application.

from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from .base import (
    BatchLimitExceededError,
    DocumentNotFoundError,
    DocumentStore,
    StoreError,
    StoreUnavailableError,
    Subscription,
    TransactionConflictError,
    TransactionStateError,
)
from .local_store import LocalDocumentStore, LocalKeyValueStore
from .sql_store import SqlDocumentStore

EXTENSION_KEY = "bodega.stores"


@dataclass
class StoreRegistry:
    remote: SqlDocumentStore
    local: LocalDocumentStore

    def for_mode(self, demo: bool) -> DocumentStore:
        return self.local if demo else self.remote


def init_stores(app: Flask) -> StoreRegistry:
    registry = StoreRegistry(
        remote=SqlDocumentStore(
            max_batch_writes=app.config["BODEGA_MAX_BATCH_WRITES"],
            attempts=app.config["BODEGA_TRANSACTION_ATTEMPTS"],
            backoff_base=app.config["BODEGA_TRANSACTION_BACKOFF"],
        ),
        local=LocalDocumentStore(LocalKeyValueStore(app.config["BODEGA_LOCAL_NAMESPACE"])),
    )
    app.extensions[EXTENSION_KEY] = registry
    return registry


def get_stores() -> StoreRegistry:
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    'StoreRegistry', 'init_stores', 'get_stores',
    'DocumentStore', 'SqlDocumentStore', 'LocalDocumentStore', 'LocalKeyValueStore', 'Subscription',
    'StoreError', 'StoreUnavailableError', 'TransactionConflictError', 'DocumentNotFoundError',
    'BatchLimitExceededError', 'TransactionStateError',
]
