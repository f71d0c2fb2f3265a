# Overview: Input parsing for sale, payment and cash payloads; raises ValidationError on bad shapes.

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError
from .models.sales import PAYMENT_METHODS

# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

DISCOUNT_TYPE_VALUE = "value"
DISCOUNT_TYPE_PERCENT = "percent"


@dataclass(frozen=True)
class DiscountInput:
    type: str
    value_cents: int | None = None
    percent: Decimal | None = None


@dataclass(frozen=True)
class SaleLineInput:
    product_id: int
    quantity: Decimal
    unit_price_cents: int | None = None
    discount: DiscountInput | None = None


@dataclass(frozen=True)
class PaymentInput:
    method: str
    amount_cents: int
    provider_ref: str | None = None


def require_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer parsing: rejects bools, floats with a fraction and
    scientific-notation strings.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required" if value is None else f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    elif isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        result = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return result


def optional_int(value: Any, field: str, **kwargs) -> int | None:
    if value is None or value == "":
        return None
    return require_int(value, field, **kwargs)


def require_cents(value: Any, field: str, *, allow_zero: bool = False) -> int:
    return require_int(value, field, minimum=0 if allow_zero else 1, maximum=MAX_PRICE_CENTS)


def optional_str(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def require_str(value: Any, field: str, *, min_length: int = 1, max_length: int = 255) -> str:
    result = optional_str(value, field, max_length=max_length)
    if result is None or len(result) < min_length:
        raise ValidationError(f"{field} must be at least {min_length} characters")
    return result


def require_decimal(value: Any, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required" if value is None else f"{field} must be a number")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    return result


def parse_discount(raw: Any, field: str = "discount") -> DiscountInput | None:
    if raw is None:
        return None
    if isinstance(raw, DiscountInput):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"{field} must be an object")

    kind = str(raw.get("type") or "").strip().lower()
    if kind == DISCOUNT_TYPE_VALUE:
        return DiscountInput(type=kind, value_cents=require_cents(raw.get("value_cents"), f"{field}.value_cents"))
    if kind == DISCOUNT_TYPE_PERCENT:
        percent = require_decimal(raw.get("percent"), f"{field}.percent")
        if percent <= 0 or percent >= 100:
            raise ValidationError(f"{field}.percent must be greater than 0 and less than 100")
        return DiscountInput(type=kind, percent=percent)
    raise ValidationError(f"{field}.type must be 'value' or 'percent'")


def parse_sale_lines(raw_items: Any) -> list[SaleLineInput]:
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, SaleLineInput):
            lines.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        quantity = require_decimal(raw.get("quantity", raw.get("qty")), f"items[{idx}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be positive")
        unit_price = raw.get("unit_price_cents")
        lines.append(SaleLineInput(
            product_id=require_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1),
            quantity=quantity.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP),
            unit_price_cents=None if unit_price is None else require_cents(unit_price, f"items[{idx}].unit_price_cents", allow_zero=True),
            discount=parse_discount(raw.get("discount"), f"items[{idx}].discount"),
        ))
    return lines


def parse_payments(raw_payments: Any) -> list[PaymentInput]:
    if not isinstance(raw_payments, (list, tuple)) or not raw_payments:
        raise ValidationError("payments must be a non-empty list")

    payments = []
    for idx, raw in enumerate(raw_payments):
        if isinstance(raw, PaymentInput):
            payments.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError(f"payments[{idx}] must be an object")
        method = str(raw.get("method") or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"payments[{idx}].method must be one of {', '.join(PAYMENT_METHODS)}")
        payments.append(PaymentInput(
            method=method,
            amount_cents=require_cents(raw.get("amount_cents"), f"payments[{idx}].amount_cents"),
            provider_ref=optional_str(raw.get("provider_ref"), f"payments[{idx}].provider_ref", max_length=128),
        ))
    return payments


def parse_id_list(raw: Any, field: str) -> list[int]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{field} must be a non-empty list")
    return [require_int(value, f"{field}[{idx}]", minimum=1) for idx, value in enumerate(raw)]
