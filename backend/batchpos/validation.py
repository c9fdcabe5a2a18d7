from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

PAYMENT_METHODS = {"cash", "card", "digital", "split"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the policy allowlist and the model's columns.

    Integer columns go through coerce_int, strings are stripped and length
    checked, nulls are only accepted on nullable columns. With partial=False
    every required_on_create field must be present. Returns the cleaned patch.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_price(name: str, value: int, *, allow_zero: bool) -> None:
    if allow_zero and value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if not allow_zero and value <= 0:
        raise ValidationError(f"{name} must be > 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_rules_product(patch: dict) -> None:
    if patch.get("price_cents") is not None:
        _check_price("price_cents", patch["price_cents"], allow_zero=True)
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")


def enforce_rules_batch(*, bought_price_cents: int, quantity: int, selling_price_cents: int) -> None:
    """A purchase batch needs a positive quantity, a non-negative cost and a positive price."""
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if bought_price_cents is None:
        raise ValidationError("bought_price_cents is required")
    _check_price("bought_price_cents", bought_price_cents, allow_zero=True)
    if selling_price_cents is None:
        raise ValidationError("selling_price_cents is required")
    _check_price("selling_price_cents", selling_price_cents, allow_zero=False)


def enforce_rules_selling_price(selling_price_cents) -> None:
    if selling_price_cents is None:
        raise ValidationError("selling_price_cents is required")
    _check_price("selling_price_cents", selling_price_cents, allow_zero=False)


def enforce_rules_payment(payment_method: str | None) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            "payment_method must be one of: " + ", ".join(sorted(PAYMENT_METHODS))
        )
