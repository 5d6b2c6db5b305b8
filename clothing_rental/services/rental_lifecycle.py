"""Rental status rules, availability cascades and price computation.

Nothing here touches the database. The engine in ``rental_service`` feeds
rentals in and writes the returned patches through the store, so the
cascade rules live in exactly one place.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from services.rental_errors import RentalValidationError

PENDING_CREATION = "pending_creation"
PENDING_ADJUSTMENT = "pending_adjustment"
ACTIVE = "active"
READY = "ready"
COMPLETED = "completed"
CANCELLED = "cancelled"

RENTAL_STATUSES = (
    PENDING_CREATION,
    PENDING_ADJUSTMENT,
    ACTIVE,
    READY,
    COMPLETED,
    CANCELLED,
)
# Rentals in these states hold their items.
BLOCKING_STATES = {ACTIVE, READY}
CLOSED_STATES = {COMPLETED, CANCELLED}

# Any status may follow any other; only these targets move item availability.
AVAILABILITY_ON_TRANSITION = {
    READY: False,
    COMPLETED: True,
}
AVAILABILITY_ON_CREATE = {
    ACTIVE: False,
}

RETURN_CONDITIONS = ("excellent", "good", "fair", "damaged", "severely_damaged")
ITEM_CONDITIONS = ("Excellent", "Good", "Fair", "Poor")

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass
class StatusTransition:
    rental_patch: dict[str, Any]
    item_availability_patches: list[tuple[int, bool]] = field(default_factory=list)

    @property
    def cascades(self) -> bool:
        return bool(self.item_availability_patches)


@dataclass
class PriceQuote:
    days: int
    daily_rate: Decimal
    base_price: Decimal
    line_items_subtotal: Decimal
    discount: Decimal
    computed_total: Decimal
    total_price: Decimal
    manual_override: bool = False

    def as_dict(self) -> dict:
        return {
            "days": self.days,
            "dailyRate": float(self.daily_rate),
            "basePrice": float(self.base_price),
            "lineItemsSubtotal": float(self.line_items_subtotal),
            "discount": float(self.discount),
            "computedTotal": float(self.computed_total),
            "totalPrice": float(self.total_price),
            "manualOverride": self.manual_override,
        }


def normalize_status(raw: str | None) -> str:
    value = (raw or "").strip().lower()
    if value not in RENTAL_STATUSES:
        raise RentalValidationError(
            f"Unknown rental status '{raw}'. Expected one of: {', '.join(RENTAL_STATUSES)}."
        )
    return value


def normalize_return_condition(raw: str | None) -> str:
    value = (raw or "").strip().lower()
    if value not in RETURN_CONDITIONS:
        raise RentalValidationError(
            f"Unknown return condition '{raw}'. Expected one of: {', '.join(RETURN_CONDITIONS)}."
        )
    return value


def initial_status(needs_adjustment: bool = False, is_custom_order: bool = False) -> str:
    if needs_adjustment and is_custom_order:
        raise RentalValidationError("A rental cannot be both a custom order and need adjustment.")
    if is_custom_order:
        return PENDING_CREATION
    if needs_adjustment:
        return PENDING_ADJUSTMENT
    return ACTIVE


def referenced_item_ids(rental: Any) -> list[int]:
    """Main item first, then line items, without duplicates."""
    ids: list[int] = []
    candidates = [getattr(rental, "clothing_item_id", None)]
    for line in getattr(rental, "RentalItems", None) or []:
        candidates.append(getattr(line, "clothing_item_id", None))
    for item_id in candidates:
        if item_id is None or item_id in ids:
            continue
        ids.append(item_id)
    return ids


def apply_status_transition(rental: Any, new_status: str, *, on_create: bool = False) -> StatusTransition:
    target = normalize_status(new_status)
    rules = AVAILABILITY_ON_CREATE if on_create else AVAILABILITY_ON_TRANSITION
    patch = {"status": target}
    if target not in rules:
        return StatusTransition(rental_patch=patch)
    available = rules[target]
    return StatusTransition(
        rental_patch=patch,
        item_availability_patches=[(item_id, available) for item_id in referenced_item_ids(rental)],
    )


def to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise RentalValidationError(f"{field_name} must be a number.")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation as exc:
            raise RentalValidationError(f"{field_name} must be a number.") from exc
    else:
        raise RentalValidationError(f"{field_name} must be a number.")
    if not parsed.is_finite():
        raise RentalValidationError(f"{field_name} must be a number.")
    return parsed


def to_money(value: Any, field_name: str, *, allow_zero: bool = True) -> Decimal:
    amount = to_decimal(value, field_name)
    if amount < 0 or (amount == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "greater than zero"
        raise RentalValidationError(f"{field_name} must be {qualifier}.")
    return amount.quantize(CENTS)


def rental_days(start: date | datetime, end: date | datetime) -> int:
    if isinstance(start, datetime) or isinstance(end, datetime):
        start_dt = start if isinstance(start, datetime) else datetime.combine(start, datetime.min.time())
        end_dt = end if isinstance(end, datetime) else datetime.combine(end, datetime.min.time())
        seconds = (end_dt - start_dt).total_seconds()
        return max(1, math.ceil(seconds / 86400))
    return max(1, (end - start).days)


def quote_rental_price(
    daily_rate: Any,
    start: date,
    end: date,
    line_item_prices: Iterable[Any] = (),
    discount: Any = None,
    manual_total: Optional[Any] = None,
) -> PriceQuote:
    rate = to_money(daily_rate, "rental_price")
    days = rental_days(start, end)
    base = (rate * days).quantize(CENTS)
    subtotal = sum((to_money(price, "price") for price in line_item_prices), ZERO)
    discount_amount = to_money(discount, "discount") if discount not in (None, "") else ZERO
    computed = max(ZERO, base + subtotal - discount_amount).quantize(CENTS)
    if manual_total is None or manual_total == "":
        total = computed
        override = False
    else:
        total = to_money(manual_total, "total_price")
        override = True
    return PriceQuote(
        days=days,
        daily_rate=rate,
        base_price=base,
        line_items_subtotal=subtotal.quantize(CENTS),
        discount=discount_amount,
        computed_total=computed,
        total_price=total,
        manual_override=override,
    )


def total_after_return(total_price: Any, additional_fees: Any) -> Decimal:
    current = to_decimal(total_price if total_price is not None else 0, "total_price")
    fees = to_money(additional_fees if additional_fees not in (None, "") else 0, "additional_fees")
    return (current + fees).quantize(CENTS)
