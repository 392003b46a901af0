# Overview: Request payload parsing; turns JSON bodies into service input specs.

from __future__ import annotations

from typing import Any

from .errors import ValidationError
from .services.deposit_service import DepositItemSpec, PartExchangeSpec, PaymentSpec


# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def parse_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """
    Strict integer parsing for JSON/query input.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals,
    and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    if isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", details={"field": field})
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={"field": field})
    return value


def parse_cents(value: Any, field: str, *, required: bool = True) -> int | None:
    cents = parse_int(value, field, required=required, minimum=0)
    if cents is not None and cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}", details={"field": field})
    return cents


def parse_bool(value: Any, field: str, *, default: bool) -> bool:
    """JSON booleans only; "false", 0 and friends are rejected, not coerced."""
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", details={"field": field})
    return value


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={"field": key})
    return value.strip() or None


def _require_object(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", details={"field": field})
    return value


def parse_item_spec(data: Any, index: int) -> DepositItemSpec:
    field = f"items[{index}]"
    data = _require_object(data, field)
    product_id = parse_int(data.get("product_id"), f"{field}.product_id", required=False, minimum=1)
    return DepositItemSpec(
        product_id=product_id,
        product_name=_optional_str(data, "product_name") or "",
        quantity=parse_int(data.get("quantity", 1), f"{field}.quantity", minimum=1),
        unit_price_cents=parse_cents(data.get("unit_price_cents"), f"{field}.unit_price_cents"),
        unit_cost_cents=parse_cents(data.get("unit_cost_cents"), f"{field}.unit_cost_cents", required=False),
        is_custom_order=parse_bool(data.get("is_custom_order"), f"{field}.is_custom_order", default=product_id is None),
        category=_optional_str(data, "category"),
        description=_optional_str(data, "description"),
    )


def parse_part_exchange_spec(data: Any, index: int) -> PartExchangeSpec:
    field = f"part_exchanges[{index}]"
    data = _require_object(data, field)
    return PartExchangeSpec(
        product_name=_optional_str(data, "product_name") or "",
        allowance_cents=parse_cents(data.get("allowance_cents"), f"{field}.allowance_cents"),
        category=_optional_str(data, "category"),
        serial=_optional_str(data, "serial"),
        notes=_optional_str(data, "notes"),
    )


def parse_payment_spec(data: Any, field: str = "initial_payment") -> PaymentSpec | None:
    if data is None:
        return None
    data = _require_object(data, field)
    return PaymentSpec(
        amount_cents=parse_cents(data.get("amount_cents"), f"{field}.amount_cents"),
        payment_method=_optional_str(data, "payment_method") or "",
        reference=_optional_str(data, "reference"),
        notes=_optional_str(data, "notes"),
    )


def parse_create_deposit_payload(data: Any) -> dict:
    """Body of POST /api/deposits/ -> keyword arguments for create_deposit_order()."""
    data = _require_object(data, "body")

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})
    part_exchanges = data.get("part_exchanges") or []
    if not isinstance(part_exchanges, list):
        raise ValidationError("part_exchanges must be a list", details={"field": "part_exchanges"})

    return {
        "items": [parse_item_spec(item, i) for i, item in enumerate(items)],
        "part_exchanges": [parse_part_exchange_spec(px, i) for i, px in enumerate(part_exchanges)],
        "initial_payment": parse_payment_spec(data.get("initial_payment")),
        "customer_id": parse_int(data.get("customer_id"), "customer_id", required=False, minimum=1),
        "customer_name": _optional_str(data, "customer_name"),
        "notes": _optional_str(data, "notes"),
        "expected_date": _optional_str(data, "expected_date"),
        "location_id": parse_int(data.get("location_id"), "location_id", required=False, minimum=1),
    }
