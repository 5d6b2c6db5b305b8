from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, extract, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.rental_models import ClothingItem, Customer, Rental, RentalItem
from services.rental_errors import PersistenceError
from services.rental_lifecycle import BLOCKING_STATES, CANCELLED, CENTS, ZERO

ITEM_ORDER_COLUMNS = {
    "name": ClothingItem.name,
    "category": ClothingItem.category,
    "size": ClothingItem.size,
    "rental_price": ClothingItem.rental_price,
    "created_at": ClothingItem.created_at,
}
CUSTOMER_ORDER_COLUMNS = {
    "name": Customer.name,
    "email": Customer.email,
    "created_at": Customer.created_at,
}
ITEM_FIELDS = ("name", "description", "size", "category", "condition", "rental_price", "image_url", "available")
CUSTOMER_FIELDS = ("name", "email", "phone", "address")
RETURN_FIELDS = ("status", "return_condition", "return_notes", "additional_fees", "total_price")


def _apply_range(stmt, range_: Optional[tuple[int, int]]):
    if range_ is None:
        return stmt
    start, end = range_
    return stmt.offset(max(0, start)).limit(max(0, end - start + 1))


class RentalStore:
    """Table-level reads and writes for items, customers and rentals.

    Every write commits on its own. A failing call rolls the session back and
    raises ``PersistenceError`` carrying the driver's message.
    """

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, exc: Exception) -> PersistenceError:
        self.db.rollback()
        return PersistenceError(str(exc))

    # Clothing items

    def list_clothing_items(
        self,
        filters: Optional[dict[str, Any]] = None,
        order_by: str = "name",
        descending: bool = False,
        range_: Optional[tuple[int, int]] = None,
    ) -> tuple[list[ClothingItem], int]:
        filters = filters or {}
        conditions = []
        if filters.get("available") is not None:
            conditions.append(ClothingItem.available == bool(filters["available"]))
        if filters.get("category"):
            conditions.append(ClothingItem.category == filters["category"])
        if filters.get("size"):
            conditions.append(ClothingItem.size == filters["size"])
        if filters.get("search"):
            conditions.append(ClothingItem.name.ilike(f"%{filters['search']}%"))

        column = ITEM_ORDER_COLUMNS.get(order_by, ClothingItem.name)
        stmt = select(ClothingItem).where(*conditions).order_by(
            column.desc() if descending else column, ClothingItem.id
        )
        try:
            total = self.db.execute(
                select(func.count(ClothingItem.id)).where(*conditions)
            ).scalar()
            items = self.db.execute(_apply_range(stmt, range_)).scalars().all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return list(items), int(total or 0)

    def get_clothing_item(self, item_id: int) -> Optional[ClothingItem]:
        try:
            return self.db.get(ClothingItem, item_id)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def create_clothing_item(self, payload: dict[str, Any]) -> ClothingItem:
        item = ClothingItem(
            **{key: payload[key] for key in ITEM_FIELDS if key in payload},
            created_at=datetime.now(),
            updated_at=datetime.now(),
        )
        if item.available is None:
            item.available = True
        try:
            self.db.add(item)
            self.db.commit()
            self.db.refresh(item)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return item

    def update_clothing_item(self, item_id: int, payload: dict[str, Any]) -> Optional[ClothingItem]:
        item = self.get_clothing_item(item_id)
        if not item:
            return None
        for key in ITEM_FIELDS:
            if key in payload and key != "available":
                setattr(item, key, payload[key])
        item.updated_at = datetime.now()
        try:
            self.db.commit()
            self.db.refresh(item)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return item

    def delete_clothing_item(self, item_id: int) -> bool:
        try:
            result = self.db.execute(delete(ClothingItem).where(ClothingItem.id == item_id))
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        self.db.expire_all()
        return bool(result.rowcount)

    def update_clothing_item_availability(self, item_id: int, available: bool) -> bool:
        """Returns False when nothing was written: the item is gone or already has the value."""
        item = self.get_clothing_item(item_id)
        if item is None or bool(item.available) == bool(available):
            return False
        item.available = bool(available)
        item.updated_at = datetime.now()
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return True

    def count_clothing_items(self) -> int:
        try:
            return int(self.db.execute(select(func.count(ClothingItem.id))).scalar() or 0)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    # Customers

    def list_customers(
        self,
        order_by: str = "name",
        range_: Optional[tuple[int, int]] = None,
        search: Optional[str] = None,
    ) -> tuple[list[Customer], int]:
        conditions = []
        if search:
            conditions.append(Customer.name.ilike(f"%{search}%"))
        column = CUSTOMER_ORDER_COLUMNS.get(order_by, Customer.name)
        stmt = select(Customer).where(*conditions).order_by(column, Customer.id)
        try:
            total = self.db.execute(select(func.count(Customer.id)).where(*conditions)).scalar()
            customers = self.db.execute(_apply_range(stmt, range_)).scalars().all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return list(customers), int(total or 0)

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        try:
            return self.db.get(Customer, customer_id)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def create_customer(self, payload: dict[str, Any], owner_id: str) -> Customer:
        customer = Customer(
            **{key: payload.get(key) for key in CUSTOMER_FIELDS},
            user_id=owner_id,
            created_at=datetime.now(),
            updated_at=datetime.now(),
        )
        try:
            self.db.add(customer)
            self.db.commit()
            self.db.refresh(customer)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return customer

    def update_customer(self, customer_id: int, payload: dict[str, Any]) -> Optional[Customer]:
        customer = self.get_customer(customer_id)
        if not customer:
            return None
        for key in CUSTOMER_FIELDS:
            if key in payload:
                setattr(customer, key, payload[key])
        customer.updated_at = datetime.now()
        try:
            self.db.commit()
            self.db.refresh(customer)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return customer

    def count_customers(self) -> int:
        try:
            return int(self.db.execute(select(func.count(Customer.id))).scalar() or 0)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    # Rentals

    def _rental_query(self):
        return (
            select(Rental)
            .options(selectinload(Rental.Customer))
            .options(selectinload(Rental.ClothingItem))
            .options(selectinload(Rental.RentalItems).selectinload(RentalItem.ClothingItem))
        )

    def get_rental(self, rental_id: int) -> Optional[Rental]:
        try:
            return self.db.execute(
                self._rental_query().where(Rental.id == rental_id).execution_options(populate_existing=True)
            ).scalars().first()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def list_rentals_with_relations(
        self,
        range_: Optional[tuple[int, int]] = None,
        status: Optional[str] = None,
    ) -> tuple[list[Rental], int]:
        conditions = [Rental.status == status] if status else []
        stmt = self._rental_query().where(*conditions).order_by(Rental.created_at.desc(), Rental.id.desc())
        try:
            total = self.db.execute(select(func.count(Rental.id)).where(*conditions)).scalar()
            rentals = self.db.execute(_apply_range(stmt, range_)).scalars().all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return list(rentals), int(total or 0)

    def count_rentals(self, status: Optional[str] = None, created_since: Optional[datetime] = None) -> int:
        stmt = select(func.count(Rental.id))
        if status:
            stmt = stmt.where(Rental.status == status)
        if created_since is not None:
            stmt = stmt.where(Rental.created_at >= created_since)
        try:
            return int(self.db.execute(stmt).scalar() or 0)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def create_rental(self, payload: dict[str, Any]) -> Rental:
        rental = Rental(
            customer_id=payload["customer_id"],
            clothing_item_id=payload["clothing_item_id"],
            start_date=payload["start_date"],
            end_date=payload["end_date"],
            status=payload["status"],
            notes=payload.get("notes"),
            total_price=payload["total_price"],
            created_at=datetime.now(),
            updated_at=datetime.now(),
        )
        try:
            self.db.add(rental)
            self.db.commit()
            self.db.refresh(rental)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return rental

    def create_rental_line_items(self, rental_id: int, items: list[dict[str, Any]]) -> list[RentalItem]:
        rows = [
            RentalItem(
                rental_id=rental_id,
                clothing_item_id=item["clothing_item_id"],
                price=item["price"],
                notes=item.get("notes"),
                created_at=datetime.now(),
                updated_at=datetime.now(),
            )
            for item in items
        ]
        if not rows:
            return []
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return rows

    def update_rental_status(self, rental_id: int, status: str, timestamp: datetime) -> None:
        try:
            self.db.execute(
                update(Rental).where(Rental.id == rental_id).values(status=status, updated_at=timestamp)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def update_rental_on_return(self, rental_id: int, fields: dict[str, Any]) -> None:
        values = {key: fields[key] for key in RETURN_FIELDS if key in fields}
        values["updated_at"] = fields.get("updated_at") or datetime.now()
        try:
            self.db.execute(update(Rental).where(Rental.id == rental_id).values(**values))
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def delete_rental(self, rental_id: int) -> bool:
        try:
            self.db.execute(delete(RentalItem).where(RentalItem.rental_id == rental_id))
            result = self.db.execute(delete(Rental).where(Rental.id == rental_id))
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        self.db.expire_all()
        return bool(result.rowcount)

    # Aggregates

    def monthly_revenue(self, year: int) -> list[dict]:
        month = extract("month", Rental.created_at)
        stmt = (
            select(month, func.coalesce(func.sum(Rental.total_price), 0), func.count(Rental.id))
            .where(Rental.created_at >= datetime(year, 1, 1))
            .where(Rental.created_at < datetime(year + 1, 1, 1))
            .where(Rental.status != CANCELLED)
            .group_by(month)
        )
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        by_month = {int(row[0]): (Decimal(str(row[1])).quantize(CENTS), int(row[2])) for row in rows}
        return [
            {
                "month": month_number,
                "revenue": by_month.get(month_number, (ZERO, 0))[0],
                "rentals": by_month.get(month_number, (ZERO, 0))[1],
            }
            for month_number in range(1, 13)
        ]

    def rental_status_counts(self) -> dict[str, int]:
        try:
            rows = self.db.execute(select(Rental.status, func.count(Rental.id)).group_by(Rental.status)).all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return {str(status): int(count) for status, count in rows}

    def top_customers(self, limit: int = 5) -> list[dict]:
        revenue = func.coalesce(func.sum(Rental.total_price), 0)
        stmt = (
            select(Customer.id, Customer.name, func.count(Rental.id), revenue)
            .join(Rental, Rental.customer_id == Customer.id)
            .where(Rental.status != CANCELLED)
            .group_by(Customer.id, Customer.name)
            .order_by(revenue.desc(), Customer.name)
            .limit(max(1, limit))
        )
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        return [
            {
                "customerID": row[0],
                "name": row[1],
                "rentalCount": int(row[2]),
                "revenue": Decimal(str(row[3])).quantize(CENTS),
            }
            for row in rows
        ]

    def top_items(self, limit: int = 5) -> list[dict]:
        main_counts = select(Rental.clothing_item_id, func.count(Rental.id)).group_by(Rental.clothing_item_id)
        line_counts = select(RentalItem.clothing_item_id, func.count(RentalItem.id)).group_by(RentalItem.clothing_item_id)
        try:
            counts: dict[int, int] = {}
            for item_id, count in self.db.execute(main_counts).all():
                counts[item_id] = counts.get(item_id, 0) + int(count)
            for item_id, count in self.db.execute(line_counts).all():
                counts[item_id] = counts.get(item_id, 0) + int(count)
            names = dict(
                self.db.execute(
                    select(ClothingItem.id, ClothingItem.name).where(ClothingItem.id.in_(list(counts)))
                ).all()
            ) if counts else {}
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc
        ranked = sorted(
            (item_id for item_id in counts if item_id in names),
            key=lambda item_id: (-counts[item_id], names[item_id]),
        )
        return [
            {"clothingItemID": item_id, "name": names[item_id], "rentalCount": counts[item_id]}
            for item_id in ranked[: max(1, limit)]
        ]

    def find_availability_mismatches(self) -> list[dict]:
        blocking = list(BLOCKING_STATES)
        try:
            held = set(
                self.db.execute(
                    select(Rental.clothing_item_id).where(Rental.status.in_(blocking))
                ).scalars().all()
            )
            held.update(
                self.db.execute(
                    select(RentalItem.clothing_item_id)
                    .join(Rental, Rental.id == RentalItem.rental_id)
                    .where(Rental.status.in_(blocking))
                ).scalars().all()
            )
            items = self.db.execute(select(ClothingItem).order_by(ClothingItem.name, ClothingItem.id)).scalars().all()
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

        mismatches = []
        for item in items:
            expected = item.id not in held
            if bool(item.available) != expected:
                mismatches.append(
                    {
                        "clothingItemID": item.id,
                        "name": item.name,
                        "available": bool(item.available),
                        "expectedAvailable": expected,
                    }
                )
        return mismatches
