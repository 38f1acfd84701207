# backend/bodega/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Remote transactional document store (cloud mode)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///bodega.sqlite3",
    )
    # Device-local durable store (demo mode)
    SQLALCHEMY_BINDS = {
        "local": os.environ.get("LOCAL_STORE_URL", "sqlite:///bodega-local.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Hard ceiling on writes per atomic batch commit against the remote store
    BODEGA_MAX_BATCH_WRITES = int(os.environ.get("BODEGA_MAX_BATCH_WRITES", "450"))

    # Optimistic transaction retry policy
    BODEGA_TRANSACTION_ATTEMPTS = int(os.environ.get("BODEGA_TRANSACTION_ATTEMPTS", "3"))
    BODEGA_TRANSACTION_BACKOFF = float(os.environ.get("BODEGA_TRANSACTION_BACKOFF", "0.05"))

    BODEGA_LOCAL_NAMESPACE = os.environ.get("BODEGA_LOCAL_NAMESPACE", "bodega")
    BODEGA_DEMO_PREFIX = os.environ.get("BODEGA_DEMO_PREFIX", "demo-")

    # Session lifetime in seconds: absolute (24h) and idle (2h)
    BODEGA_SESSION_ABSOLUTE_TIMEOUT = int(os.environ.get("BODEGA_SESSION_ABSOLUTE_TIMEOUT", "86400"))
    BODEGA_SESSION_IDLE_TIMEOUT = int(os.environ.get("BODEGA_SESSION_IDLE_TIMEOUT", "7200"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
