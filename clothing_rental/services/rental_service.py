from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Optional, Protocol

from models.rental_models import Rental
from schemas.rentals import CreateRentalDto, RentalLineItemDto
from services.rental_errors import (
    PersistenceError,
    RentalNotFound,
    RentalPartialFailure,
    RentalValidationError,
)
from services.rental_lifecycle import (
    CLOSED_STATES,
    COMPLETED,
    PriceQuote,
    StatusTransition,
    apply_status_transition,
    initial_status,
    normalize_return_condition,
    normalize_status,
    quote_rental_price,
    to_money,
    total_after_return,
)
from services.rental_store import RentalStore

LOGGER = logging.getLogger("clothing_rental.rentals")


class AuthProvider(Protocol):
    def get_current_user_id(self) -> Optional[str]: ...


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class _StepRunner:
    """Runs the writes of one operation in order and labels partial failures."""

    def __init__(self, operation: str):
        self.operation = operation
        self.completed: list[str] = []

    def run(self, step: str, call: Callable[[], Any]) -> Any:
        try:
            result = call()
        except PersistenceError as exc:
            if not self.completed:
                raise
            LOGGER.warning(
                "%s partial failure step=%s completed=%s error=%s",
                self.operation,
                step,
                ",".join(self.completed),
                exc,
            )
            raise RentalPartialFailure(step, self.completed, exc) from exc
        self.completed.append(step)
        return result


class RentalEngine:
    def __init__(
        self,
        store: RentalStore,
        auth: AuthProvider,
        *,
        today: Callable[[], date] = date.today,
        allow_past_start: bool = False,
    ):
        self.store = store
        self.auth = auth
        self.today = today
        self.allow_past_start = allow_past_start

    def validate_line_item(self, line: RentalLineItemDto) -> dict:
        if line.clothingItemID is None:
            raise RentalValidationError("Select a clothing item for the additional line.")
        price = to_money(line.price, "Line item price", allow_zero=False)
        return {
            "clothing_item_id": line.clothingItemID,
            "price": price,
            "notes": (line.notes or "").strip() or None,
        }

    def _require_item(self, item_id: int):
        item = self.store.get_clothing_item(item_id)
        if item is None:
            raise RentalValidationError(f"Clothing item {item_id} not found.")
        return item

    def _validate_dates(self, start: Optional[date], end: Optional[date]) -> None:
        if start is None or end is None:
            raise RentalValidationError("Start date and end date are required.")
        if end < start:
            raise RentalValidationError("endDate must be on or after startDate.")
        if not self.allow_past_start and start < self.today():
            raise RentalValidationError("startDate cannot be in the past.")

    def quote(self, payload: CreateRentalDto) -> PriceQuote:
        if payload.clothingItemID is None:
            raise RentalValidationError("Select a clothing item.")
        self._validate_dates(payload.startDate, payload.endDate)
        item = self._require_item(payload.clothingItemID)
        lines = [self.validate_line_item(line) for line in payload.rentalItems]
        return quote_rental_price(
            item.rental_price,
            payload.startDate,
            payload.endDate,
            [line["price"] for line in lines],
            discount=payload.discount,
            manual_total=payload.manualTotalPrice,
        )

    def _new_customer_fields(self, payload: CreateRentalDto) -> tuple[dict, str]:
        customer = payload.newCustomer
        fields = {
            "name": (customer.name or "").strip(),
            "email": (customer.email or "").strip(),
            "phone": (customer.phone or "").strip(),
            "address": (customer.address or "").strip() or None,
        }
        if not fields["name"] or not fields["email"] or not fields["phone"]:
            raise RentalValidationError("Please fill in all required customer fields.")
        try:
            owner_id = self.auth.get_current_user_id()
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc
        if not owner_id:
            raise RentalValidationError("You must be logged in to add a customer.")
        return fields, owner_id

    def create_rental(self, payload: CreateRentalDto) -> Rental:
        customer_fields: Optional[dict] = None
        owner_id: Optional[str] = None
        if payload.newCustomer is not None:
            customer_fields, owner_id = self._new_customer_fields(payload)
        elif payload.customerID is None:
            raise RentalValidationError("Please select a customer.")
        elif self.store.get_customer(payload.customerID) is None:
            raise RentalValidationError(f"Customer {payload.customerID} not found.")

        status = initial_status(payload.needsAdjustment, payload.isCustomOrder)
        quote = self.quote(payload)
        lines = [self.validate_line_item(line) for line in payload.rentalItems]
        # An item is rented sequentially: one open rental at a time.
        for item_id in [payload.clothingItemID] + [line["clothing_item_id"] for line in lines]:
            if not self._require_item(item_id).available:
                raise RentalValidationError(f"Clothing item {item_id} is already rented out.")

        steps = _StepRunner("create_rental")
        customer_id = payload.customerID
        if customer_fields is not None:
            customer = steps.run("create_customer", lambda: self.store.create_customer(customer_fields, owner_id))
            customer_id = customer.id

        rental = steps.run(
            "create_rental",
            lambda: self.store.create_rental(
                {
                    "customer_id": customer_id,
                    "clothing_item_id": payload.clothingItemID,
                    "start_date": payload.startDate,
                    "end_date": payload.endDate,
                    "status": status,
                    "notes": (payload.notes or "").strip() or None,
                    "total_price": quote.total_price,
                }
            ),
        )
        rental_id = rental.id
        if lines:
            steps.run("create_rental_line_items", lambda: self.store.create_rental_line_items(rental_id, lines))

        created = steps.run("load_rental", lambda: self._reload(rental_id))
        self._apply_cascade(apply_status_transition(created, status, on_create=True), steps)
        LOGGER.info(
            "Rental created rental_id=%s status=%s total=%s manual_override=%s",
            rental_id,
            status,
            quote.total_price,
            quote.manual_override,
        )
        return self._reload(rental_id)

    def change_status(self, rental_id: int, new_status: str) -> Rental:
        target = normalize_status(new_status)
        rental = self.get_rental(rental_id)
        previous = rental.status
        transition = apply_status_transition(rental, target)

        steps = _StepRunner("change_status")
        steps.run(
            "update_rental_status",
            lambda: self.store.update_rental_status(rental_id, transition.rental_patch["status"], datetime.now()),
        )
        self._apply_cascade(transition, steps)
        LOGGER.info("Rental status changed rental_id=%s from=%s to=%s", rental_id, previous, target)
        return self._reload(rental_id)

    def return_rental(
        self,
        rental_id: int,
        return_condition: str,
        return_notes: Optional[str] = None,
        additional_fees: Any = None,
    ) -> Rental:
        condition = normalize_return_condition(return_condition)
        fees = to_money(additional_fees if not _blank(additional_fees) else 0, "additional_fees")
        rental = self.get_rental(rental_id)
        if rental.status in CLOSED_STATES:
            raise RentalValidationError(f"Rental {rental_id} is already {rental.status}.")

        transition = apply_status_transition(rental, COMPLETED)
        fields = dict(transition.rental_patch)
        fields.update(
            {
                "return_condition": condition,
                "return_notes": (return_notes or "").strip() or None,
                "additional_fees": fees,
                "total_price": total_after_return(rental.total_price, fees),
                "updated_at": datetime.now(),
            }
        )
        steps = _StepRunner("return_rental")
        steps.run("update_rental_on_return", lambda: self.store.update_rental_on_return(rental_id, fields))
        self._apply_cascade(transition, steps)
        LOGGER.info(
            "Rental returned rental_id=%s condition=%s fees=%s total=%s",
            rental_id,
            condition,
            fees,
            fields["total_price"],
        )
        return self._reload(rental_id)

    def delete_rental(self, rental_id: int) -> None:
        # Item availability is left as it is; see find_availability_mismatches.
        self.get_rental(rental_id)
        self.store.delete_rental(rental_id)
        LOGGER.info("Rental deleted rental_id=%s", rental_id)

    def get_rental(self, rental_id: int) -> Rental:
        rental = self.store.get_rental(rental_id)
        if rental is None:
            raise RentalNotFound(f"Rental {rental_id} not found.")
        return rental

    def _reload(self, rental_id: int) -> Rental:
        rental = self.store.get_rental(rental_id)
        if rental is None:
            raise PersistenceError(f"Rental {rental_id} disappeared after write.")
        return rental

    def _apply_cascade(self, transition: StatusTransition, steps: _StepRunner) -> None:
        for item_id, available in transition.item_availability_patches:
            steps.run(
                f"set_item_{item_id}_available_{str(available).lower()}",
                lambda item_id=item_id, available=available: self.store.update_clothing_item_availability(
                    item_id, available
                ),
            )


def serialize_rental(rental: Rental) -> dict:
    line_items = []
    for line in rental.RentalItems:
        line_items.append(
            {
                "id": line.id,
                "rentalID": line.rental_id,
                "clothingItemID": line.clothing_item_id,
                "price": float(line.price or 0),
                "notes": line.notes,
                "clothingItem": {
                    "name": line.ClothingItem.name,
                    "size": line.ClothingItem.size,
                } if line.ClothingItem else None,
            }
        )

    return {
        "id": rental.id,
        "customerID": rental.customer_id,
        "clothingItemID": rental.clothing_item_id,
        "startDate": rental.start_date,
        "endDate": rental.end_date,
        "status": rental.status,
        "totalPrice": float(rental.total_price or 0),
        "notes": rental.notes,
        "returnCondition": rental.return_condition,
        "returnNotes": rental.return_notes,
        "additionalFees": float(rental.additional_fees) if rental.additional_fees is not None else None,
        "createdAt": rental.created_at,
        "updatedAt": rental.updated_at,
        "customer": {
            "id": rental.Customer.id,
            "name": rental.Customer.name,
            "phone": rental.Customer.phone,
        } if rental.Customer else None,
        "clothingItem": {
            "id": rental.ClothingItem.id,
            "name": rental.ClothingItem.name,
            "size": rental.ClothingItem.size,
            "available": bool(rental.ClothingItem.available),
        } if rental.ClothingItem else None,
        "rentalItems": line_items,
    }
