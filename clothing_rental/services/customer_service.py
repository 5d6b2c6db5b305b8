from __future__ import annotations

from models.rental_models import Customer
from schemas.customers import CustomerUpsert
from services.rental_errors import RentalValidationError

REQUIRED_CUSTOMER_FIELDS = ("name", "email", "phone")


def build_customer_fields(payload: CustomerUpsert, *, partial: bool = False) -> dict:
    fields = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        value = (value or "").strip()
        if key == "address":
            fields[key] = value or None
            continue
        if not value:
            raise RentalValidationError(f"{key} is required.")
        fields[key] = value
    if not partial:
        missing = [key for key in REQUIRED_CUSTOMER_FIELDS if key not in fields]
        if missing:
            raise RentalValidationError(f"Missing required customer fields: {', '.join(missing)}.")
    if "email" in fields and "@" not in fields["email"]:
        raise RentalValidationError("email must be a valid email address.")
    return fields


def serialize_customer(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "address": customer.address,
        "userID": customer.user_id,
        "createdAt": customer.created_at,
    }
