import contextlib
import io
import tempfile
import unittest
from datetime import date
from decimal import Decimal
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from tests import support  # noqa: F401

from db.base import Base
from scripts import availability_report, create_staff_account
from services.rental_store import RentalStore
from services.user_access_service import verify_password


class AvailabilityReportTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_url = f"sqlite+pysqlite:///{Path(self.tmp.name) / 'report.db'}"
        self.engine = create_engine(self.db_url, future=True)
        Base.metadata.create_all(self.engine)

    def tearDown(self):
        self.engine.dispose()
        self.tmp.cleanup()

    def _seed(self, item_available):
        with Session(self.engine, expire_on_commit=False) as db:
            store = RentalStore(db)
            item = support.add_item(store, "Gown", available=item_available)
            customer = support.add_customer(store)
            store.create_rental(
                {
                    "customer_id": customer.id,
                    "clothing_item_id": item.id,
                    "start_date": date(2024, 5, 1),
                    "end_date": date(2024, 5, 2),
                    "status": "active",
                    "total_price": Decimal("50.00"),
                }
            )

    def _run(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = availability_report.main(argv)
        return code, out.getvalue()

    def test_consistent_database_passes(self):
        self._seed(item_available=False)
        checks = availability_report.run_integrity_checks(self.engine)
        self.assertTrue(all(check.ok for check in checks))

        code, output = self._run(["--db-url", self.db_url])
        self.assertEqual(code, 0)
        self.assertIn("rentals: 1", output)

    def test_stranded_item_is_reported(self):
        self._seed(item_available=True)
        checks = {check.name: check for check in availability_report.run_integrity_checks(self.engine)}
        mismatch = checks["clothing_items:availability_matches_rentals"]
        self.assertFalse(mismatch.ok)
        self.assertIn("Gown available=True expected=False", mismatch.detail)

        code, output = self._run(["--db-url", self.db_url])
        self.assertEqual(code, 1)
        self.assertIn("[FAIL] clothing_items:availability_matches_rentals", output)

    def test_missing_tables_fail_existence_checks(self):
        empty_url = f"sqlite+pysqlite:///{Path(self.tmp.name) / 'empty.db'}"
        code, output = self._run(["--db-url", empty_url])
        self.assertEqual(code, 1)
        self.assertIn("[FAIL] table:rentals", output)

    def test_blank_url_is_a_usage_error(self):
        code, _ = self._run(["--db-url", " "])
        self.assertEqual(code, 2)


class CreateStaffAccountTests(unittest.TestCase):
    def test_creates_account_once(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            first = create_staff_account.main(["--email", "Desk@Example.com", "--password", "front-desk"])
            second = create_staff_account.main(["--email", "desk@example.com", "--password", "front-desk"])

        self.assertEqual(first, 0)
        self.assertEqual(second, 1)
        self.assertIn("already exists", out.getvalue())
        self.assertIsNotNone(verify_password("desk@example.com", "front-desk"))


if __name__ == "__main__":
    unittest.main()
