from __future__ import annotations

from typing import Any

from models.rental_models import ClothingItem
from schemas.inventory import ClothingItemUpsert
from services.rental_errors import RentalValidationError
from services.rental_lifecycle import ITEM_CONDITIONS, to_money

REQUIRED_ITEM_FIELDS = ("name", "size", "category", "condition", "rental_price")

_FIELD_MAP = {
    "rentalPrice": "rental_price",
    "imageUrl": "image_url",
}


def _map_item_field(field: str) -> str:
    return _FIELD_MAP.get(field, field)


def _normalize_condition(raw: str) -> str:
    for condition in ITEM_CONDITIONS:
        if condition.lower() == raw.strip().lower():
            return condition
    raise RentalValidationError(f"Condition must be one of: {', '.join(ITEM_CONDITIONS)}.")


def build_item_fields(payload: ClothingItemUpsert, *, partial: bool = False) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for field, value in payload.model_dump(exclude_unset=True).items():
        key = _map_item_field(field)
        if isinstance(value, str):
            value = value.strip()
        if key == "rental_price":
            value = to_money(value, "Rental price", allow_zero=False)
        elif key == "condition" and value:
            value = _normalize_condition(value)
        elif key in ("description", "image_url"):
            value = value or None
        fields[key] = value

    for key in REQUIRED_ITEM_FIELDS:
        if key in fields and fields[key] in (None, ""):
            raise RentalValidationError(f"{key} is required.")
        if not partial and key not in fields:
            raise RentalValidationError(f"{key} is required.")
    return fields


def serialize_item(item: ClothingItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "size": item.size,
        "category": item.category,
        "condition": item.condition,
        "rentalPrice": float(item.rental_price or 0),
        "available": bool(item.available),
        "imageUrl": item.image_url,
        "createdAt": item.created_at,
        "updatedAt": item.updated_at,
    }
