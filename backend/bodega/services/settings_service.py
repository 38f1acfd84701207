# Overview: Business settings (AppConfig) and first-run seeding of a store.

from __future__ import annotations

from ..models.records import (
    CLIENTS,
    CONFIG,
    CONFIG_DOC_ID,
    WALK_IN_CLIENT_ID,
    AppConfig,
    Client,
)
from ..stores import DocumentStore
from ..validation import ValidationError, enforce_rules_config, validate_config_payload
from .notification_service import SUCCESS

WALK_IN_CLIENT_NAME = "Cliente General"


def load_config(store: DocumentStore) -> AppConfig:
    """Persisted config merged over defaults (missing doc -> all defaults)."""
    return AppConfig.from_dict(store.get(CONFIG, CONFIG_DOC_ID))


def config_from_records(records: list[dict]) -> AppConfig:
    """Pick config/main out of a config collection snapshot."""
    for record in records:
        if record.get("id") == CONFIG_DOC_ID:
            return AppConfig.from_dict(record)
    return AppConfig()


def ensure_defaults(store: DocumentStore) -> bool:
    """
    Seed the config singleton and the walk-in client if they are missing.

    Returns True when anything was written.
    """
    def _op(txn) -> bool:
        config = txn.get(CONFIG, CONFIG_DOC_ID)
        walk_in = txn.get(CLIENTS, WALK_IN_CLIENT_ID)
        if config is None:
            txn.set(CONFIG, CONFIG_DOC_ID, AppConfig().to_dict())
        if walk_in is None:
            txn.set(CLIENTS, WALK_IN_CLIENT_ID, Client(name=WALK_IN_CLIENT_NAME).to_dict())
        return config is None or walk_in is None

    return store.run_transaction(_op)


def parse_config(payload: dict) -> AppConfig:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    validate_config_payload(payload)
    try:
        config = AppConfig.from_dict(payload)
    except ValueError as e:
        raise ValidationError(str(e))
    enforce_rules_config(config)
    return config


def save_config(ctx, payload: dict) -> AppConfig:
    """Overwrite the whole config document (no field-by-field patching)."""
    config = parse_config(payload)
    ctx.store.set(CONFIG, CONFIG_DOC_ID, config.to_dict())
    ctx.config = config
    ctx.notify("Configuration saved", SUCCESS)
    return config
