import os
import sys
import tempfile
from decimal import Decimal
from pathlib import Path


os.environ.setdefault("CLOTHING_RENTAL_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SESSION_SIGNING_SECRET", "x" * 48)
os.environ.setdefault("CLOTHING_RENTAL_DATA_DIR", tempfile.mkdtemp(prefix="clothing-rental-tests-"))
os.environ.setdefault("PASSWORD_RESET_EXPOSE_TOKEN", "true")

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from sqlalchemy.orm import Session  # noqa: E402

from db.base import Base  # noqa: E402
from db.session import build_engine  # noqa: E402
from services.rental_errors import PersistenceError  # noqa: E402
from services.rental_store import RentalStore  # noqa: E402


class FakeAuth:
    def __init__(self, user_id="staff-1"):
        self.user_id = user_id

    def get_current_user_id(self):
        return self.user_id


class RecordingStore(RentalStore):
    """Real store that records availability writes and can fail on demand."""

    def __init__(self, db):
        super().__init__(db)
        self.availability_changes = []
        self.fail_on = {}

    def _maybe_fail(self, name, key=None):
        message = self.fail_on.get((name, key)) or self.fail_on.get((name, None))
        if message:
            raise PersistenceError(message)

    def update_clothing_item_availability(self, item_id, available):
        self._maybe_fail("update_clothing_item_availability", item_id)
        changed = super().update_clothing_item_availability(item_id, available)
        if changed:
            self.availability_changes.append((item_id, available))
        return changed

    def update_rental_status(self, rental_id, status, timestamp):
        self._maybe_fail("update_rental_status")
        return super().update_rental_status(rental_id, status, timestamp)

    def create_rental_line_items(self, rental_id, items):
        self._maybe_fail("create_rental_line_items")
        return super().create_rental_line_items(rental_id, items)

    def create_customer(self, payload, owner_id):
        self._maybe_fail("create_customer")
        return super().create_customer(payload, owner_id)


def make_store(store_class=RecordingStore):
    engine = build_engine("sqlite+pysqlite://")
    Base.metadata.create_all(engine)
    db = Session(engine, expire_on_commit=False, autoflush=False)
    return store_class(db)


def add_item(store, name="Evening Gown", rental_price="50.00", available=True, category="Dresses", size="M"):
    return store.create_clothing_item(
        {
            "name": name,
            "size": size,
            "category": category,
            "condition": "Good",
            "rental_price": Decimal(rental_price),
            "available": available,
        }
    )


def add_customer(store, name="Ada Lovelace", owner_id="staff-1"):
    return store.create_customer(
        {"name": name, "email": f"{name.split()[0].lower()}@example.com", "phone": "555-0100"},
        owner_id,
    )
