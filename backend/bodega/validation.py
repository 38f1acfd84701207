from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any

from .money import to_decimal
from .models.records import (
    EXPENSE_PAYMENT_METHODS,
    PRODUCT_STATUSES,
    AppConfig,
    EmployeePermissions,
    ReceiptOptions,
    Record,
)


# Maximum price: 9,999,999.99
MAX_PRICE = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product code)."""


@dataclass(frozen=True)
class ValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()  # type: ignore[assignment]


def _coerce_value(record_cls: type[Record], key: str, value: Any):
    if key in record_cls.money_fields:
        if isinstance(value, bool):
            raise ValidationError(f"{key} must be a number")
        try:
            return to_decimal(value)
        except ValueError:
            raise ValidationError(f"{key} must be a number")

    if key in record_cls.int_fields:
        # Integers - strict validation to reject floats and scientific notation
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{key} must be an integer")
        raise ValidationError(f"{key} must be an integer")

    if key in record_cls.bool_fields:
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{key} must be a boolean")

    if isinstance(value, (dict, list)):
        raise ValidationError(f"{key} must be a scalar value")

    return str(value).strip()


def validate_payload(
    *,
    record_cls: type[Record],
    payload: dict,
    policy: ValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - the record's field list and money/int/bool field declarations
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    known = {f.name for f in fields(record_cls)}

    patch: dict = {}
    for key, raw in payload.items():
        if key == "id":
            continue
        if key not in known:
            raise ValidationError(f"Unknown field: {key}")
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if raw is None:
            raise ValidationError(f"{key} cannot be null")
        patch[key] = _coerce_value(record_cls, key, raw)

    return patch


def _non_negative(patch: dict, key: str, maximum: Decimal | None = None) -> None:
    if key not in patch:
        return
    value = patch[key]
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} cannot exceed {maximum}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by the record declarations alone.
    Keep these small and centralized.
    """
    _non_negative(patch, "sale_price", MAX_PRICE)
    _non_negative(patch, "cost_price", MAX_PRICE)
    _non_negative(patch, "min_stock")
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")
    if "code" in patch and not patch["code"]:
        raise ValidationError("code cannot be blank")
    if "status" in patch and patch["status"] not in PRODUCT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")


def enforce_rules_client(patch: dict) -> None:
    _non_negative(patch, "credit_limit", MAX_PRICE)
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")


def enforce_rules_expense(patch: dict) -> None:
    if "amount" in patch and patch["amount"] <= 0:
        raise ValidationError("amount must be > 0")
    if "payment_method" in patch and patch["payment_method"] not in EXPENSE_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(EXPENSE_PAYMENT_METHODS)}")


def enforce_rules_config(config) -> None:
    if config.exchange_rate <= 0:
        raise ValidationError("exchange_rate must be > 0")
    if config.secondary_exchange_rate < 0:
        raise ValidationError("secondary_exchange_rate must be >= 0")
    if config.tax_rate < 0 or config.tax_rate > 100:
        raise ValidationError("tax_rate must be between 0 and 100")
    if config.low_stock_threshold < 0:
        raise ValidationError("low_stock_threshold must be >= 0")
    if not -720 <= config.utc_offset_minutes <= 840:
        raise ValidationError("utc_offset_minutes must be between -720 and 840")


def _check_typed_fields(record_cls: type[Record], data: dict, prefix: str = "") -> None:
    typed = record_cls.money_fields + record_cls.int_fields + record_cls.bool_fields
    for key in typed:
        if data.get(key) is None:
            continue
        try:
            _coerce_value(record_cls, key, data[key])
        except ValidationError as e:
            raise ValidationError(f"{prefix}{e}")


def validate_config_payload(payload: dict) -> None:
    """
    Type-check a whole config document, nested permissions and receipt
    included, before it is merged over defaults. Booleans must be real
    booleans: "false" is rejected, not read as truthy.
    """
    _check_typed_fields(AppConfig, payload)
    for key, nested_cls in (("permissions", EmployeePermissions), ("receipt", ReceiptOptions)):
        nested = payload.get(key)
        if nested is None:
            continue
        if not isinstance(nested, dict):
            raise ValidationError(f"{key} must be an object")
        _check_typed_fields(nested_cls, nested, prefix=f"{key}.")
