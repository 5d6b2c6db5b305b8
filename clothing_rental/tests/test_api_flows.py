import unittest
import uuid
from datetime import date, timedelta

from fastapi.testclient import TestClient

from tests.support import add_customer, add_item, make_store

import RentalMan as app_module
from services.rental_store import RentalStore
from services.user_access_service import create_account


class ApiFlowTestCase(unittest.TestCase):
    def setUp(self):
        self.store = make_store(RentalStore)
        app_module.app.dependency_overrides[app_module.get_rental_store] = lambda: self.store
        app_module.app.dependency_overrides[app_module.get_rental_db] = lambda: self.store.db
        self.client = TestClient(app_module.app)
        self.email = f"staff-{uuid.uuid4().hex[:8]}@example.com"
        self.password = "correct-horse"
        self.account = create_account(self.email, self.password)

    def tearDown(self):
        app_module.app.dependency_overrides.clear()
        self.store.db.close()

    def login(self):
        response = self.client.post("/api/auth/login", json={"email": self.email, "password": self.password})
        self.assertEqual(response.status_code, 200)
        return {"X-Session-Token": response.json()["sessionToken"]}

    def rental_payload(self, item_id, customer_id, **overrides):
        start = date.today() + timedelta(days=1)
        payload = {
            "customerID": customer_id,
            "clothingItemID": item_id,
            "startDate": start.isoformat(),
            "endDate": (start + timedelta(days=3)).isoformat(),
        }
        payload.update(overrides)
        return payload


class AuthFlowTests(ApiFlowTestCase):
    def test_login_logout_revokes_session_token(self):
        headers = self.login()
        me_before = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(me_before.status_code, 200)
        self.assertEqual(me_before.json()["user"]["userID"], self.account["userID"])

        logout = self.client.post("/api/auth/logout", headers=headers)
        self.assertEqual(logout.status_code, 200)

        me_after = self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(me_after.status_code, 401)

    def test_login_persists_with_cookie_session(self):
        login = self.client.post("/api/auth/login", json={"email": self.email, "password": self.password})
        self.assertEqual(login.status_code, 200)
        self.assertIn("clothing_rental_session=", login.headers.get("set-cookie", ""))

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["email"], self.email)

    def test_wrong_password_is_rejected(self):
        response = self.client.post("/api/auth/login", json={"email": self.email, "password": "nope-nope"})
        self.assertEqual(response.status_code, 401)

    def test_login_rejects_unknown_fields(self):
        response = self.client.post(
            "/api/auth/login",
            json={"email": self.email, "password": self.password, "role": "admin"},
        )
        self.assertEqual(response.status_code, 400)

    def test_signup_rejects_duplicate_email(self):
        response = self.client.post("/api/auth/signup", json={"email": self.email, "password": "another-one"})
        self.assertEqual(response.status_code, 400)

    def test_password_reset_flow(self):
        forgot = self.client.post("/api/auth/forgot-password", json={"email": self.email})
        self.assertEqual(forgot.status_code, 200)
        token = forgot.json()["resetToken"]

        reset = self.client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
        self.assertEqual(reset.status_code, 200)

        reused = self.client.post("/api/auth/reset-password", json={"token": token, "password": "other-pass"})
        self.assertEqual(reused.status_code, 400)

        old = self.client.post("/api/auth/login", json={"email": self.email, "password": self.password})
        self.assertEqual(old.status_code, 401)
        new = self.client.post("/api/auth/login", json={"email": self.email, "password": "brand-new-pass"})
        self.assertEqual(new.status_code, 200)

    def test_forgot_password_for_unknown_email_looks_the_same(self):
        response = self.client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})

    def test_data_endpoints_require_login(self):
        for path in ("/api/inventory", "/api/customers", "/api/rentals", "/api/dashboard/stats"):
            with self.subTest(path=path):
                self.assertEqual(self.client.get(path).status_code, 401)
        response = self.client.post("/api/rentals", json={})
        self.assertEqual(response.status_code, 401)


class InventoryAndCustomerTests(ApiFlowTestCase):
    def test_create_list_update_and_delete_item(self):
        headers = self.login()
        created = self.client.post(
            "/api/inventory",
            json={"name": "Tux", "size": "L", "category": "Suits", "condition": "good", "rentalPrice": "35"},
            headers=headers,
        )
        self.assertEqual(created.status_code, 200)
        item = created.json()
        self.assertEqual(item["condition"], "Good")
        self.assertEqual(item["rentalPrice"], 35.0)
        self.assertTrue(item["available"])

        listing = self.client.get("/api/inventory", params={"category": "Suits"}, headers=headers)
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(listing.json()["totalCount"], 1)

        updated = self.client.put(f"/api/inventory/{item['id']}", json={"rentalPrice": "40"}, headers=headers)
        self.assertEqual(updated.json()["rentalPrice"], 40.0)
        self.assertEqual(updated.json()["name"], "Tux")

        deleted = self.client.delete(f"/api/inventory/{item['id']}", headers=headers)
        self.assertEqual(deleted.status_code, 200)
        missing = self.client.get(f"/api/inventory/{item['id']}", headers=headers)
        self.assertEqual(missing.status_code, 404)

    def test_item_with_zero_price_is_rejected(self):
        headers = self.login()
        response = self.client.post(
            "/api/inventory",
            json={"name": "Tux", "size": "L", "category": "Suits", "condition": "Good", "rentalPrice": "0"},
            headers=headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.store.count_clothing_items(), 0)

    def test_customer_is_owned_by_the_signed_in_user(self):
        headers = self.login()
        response = self.client.post(
            "/api/customers",
            json={"name": "Grace Hopper", "email": "grace@example.com", "phone": "555-0101"},
            headers=headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["userID"], self.account["userID"])

        invalid = self.client.post(
            "/api/customers",
            json={"name": "No Mail", "email": "not-an-email", "phone": "555"},
            headers=headers,
        )
        self.assertEqual(invalid.status_code, 400)


class RentalFlowTests(ApiFlowTestCase):
    def setUp(self):
        super().setUp()
        self.headers = self.login()
        self.gown = add_item(self.store, "Evening Gown", "50.00")
        self.veil = add_item(self.store, "Lace Veil", "15.00")
        self.customer = add_customer(self.store)

    def test_quote_does_not_write(self):
        payload = self.rental_payload(
            self.gown.id,
            self.customer.id,
            discount="10",
            rentalItems=[{"clothingItemID": self.veil.id, "price": "20"}],
        )
        response = self.client.post("/api/rentals/quote", json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["days"], 3)
        self.assertEqual(response.json()["totalPrice"], 160.0)
        self.assertEqual(self.store.count_rentals(), 0)

    def test_line_item_check(self):
        ok = self.client.post(
            "/api/rentals/line-items/check",
            json={"clothingItemID": self.veil.id, "price": "12.5"},
            headers=self.headers,
        )
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["clothingItem"]["name"], "Lace Veil")

        bad_price = self.client.post(
            "/api/rentals/line-items/check",
            json={"clothingItemID": self.veil.id, "price": "abc"},
            headers=self.headers,
        )
        self.assertEqual(bad_price.status_code, 400)

        unknown = self.client.post(
            "/api/rentals/line-items/check",
            json={"clothingItemID": 9999, "price": "5"},
            headers=self.headers,
        )
        self.assertEqual(unknown.status_code, 400)

    def test_rental_lifecycle_over_http(self):
        payload = self.rental_payload(
            self.gown.id,
            None,
            newCustomer={"name": "Grace Hopper", "email": "grace@example.com", "phone": "555-0101"},
            rentalItems=[{"clothingItemID": self.veil.id, "price": "20"}],
        )
        created = self.client.post("/api/rentals", json=payload, headers=self.headers)
        self.assertEqual(created.status_code, 200)
        rental = created.json()
        self.assertEqual(rental["status"], "active")
        self.assertEqual(rental["totalPrice"], 170.0)
        self.assertEqual(rental["customer"]["name"], "Grace Hopper")
        self.assertFalse(rental["clothingItem"]["available"])

        ready = self.client.post(f"/api/rentals/{rental['id']}/status", json={"status": "ready"}, headers=self.headers)
        self.assertEqual(ready.status_code, 200)
        self.assertEqual(ready.json()["status"], "ready")

        returned = self.client.post(
            f"/api/rentals/{rental['id']}/return",
            json={"returnCondition": "fair", "returnNotes": "Stain on hem", "additionalFees": "12.50"},
            headers=self.headers,
        )
        self.assertEqual(returned.status_code, 200)
        body = returned.json()
        self.assertEqual(body["status"], "completed")
        self.assertEqual(body["totalPrice"], 182.5)
        self.assertEqual(body["additionalFees"], 12.5)
        self.assertTrue(body["clothingItem"]["available"])

        mismatches = self.client.get("/api/reports/availability-mismatches", headers=self.headers)
        self.assertEqual(mismatches.json(), [])

        listing = self.client.get("/api/rentals", params={"status": "completed"}, headers=self.headers)
        self.assertEqual(listing.json()["totalCount"], 1)

    def test_validation_errors_map_to_400(self):
        past = date.today() - timedelta(days=3)
        payload = self.rental_payload(self.gown.id, self.customer.id, startDate=past.isoformat())
        response = self.client.post("/api/rentals", json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 400)

        both_flags = self.rental_payload(self.gown.id, self.customer.id, needsAdjustment=True, isCustomOrder=True)
        response = self.client.post("/api/rentals", json=both_flags, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.store.count_rentals(), 0)

    def test_unknown_rental_is_404(self):
        self.assertEqual(self.client.get("/api/rentals/999", headers=self.headers).status_code, 404)
        response = self.client.post("/api/rentals/999/status", json={"status": "ready"}, headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_delete_rental_reports_stranded_items(self):
        created = self.client.post(
            "/api/rentals",
            json=self.rental_payload(self.gown.id, self.customer.id),
            headers=self.headers,
        ).json()

        deleted = self.client.delete(f"/api/rentals/{created['id']}", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)

        mismatches = self.client.get("/api/reports/availability-mismatches", headers=self.headers).json()
        self.assertEqual([row["clothingItemID"] for row in mismatches], [self.gown.id])
        self.assertTrue(mismatches[0]["expectedAvailable"])

    def test_dashboard_and_reports(self):
        self.client.post("/api/rentals", json=self.rental_payload(self.gown.id, self.customer.id), headers=self.headers)

        stats = self.client.get("/api/dashboard/stats", headers=self.headers).json()
        self.assertEqual(stats["activeRentals"], 1)
        self.assertEqual(stats["totalInventory"], 2)
        self.assertEqual(stats["totalCustomers"], 1)
        self.assertEqual(stats["rentalsThisMonth"], 1)

        revenue = self.client.get("/api/reports/monthly-revenue", headers=self.headers).json()
        self.assertEqual(len(revenue["months"]), 12)
        self.assertEqual(sum(row["revenue"] for row in revenue["months"]), 150.0)

        counts = self.client.get("/api/reports/status-counts", headers=self.headers).json()
        self.assertEqual(counts, {"active": 1})

        top = self.client.get("/api/reports/top-customers", headers=self.headers).json()
        self.assertEqual(top[0]["name"], "Ada Lovelace")
        self.assertEqual(top[0]["revenue"], 150.0)

        items = self.client.get("/api/reports/top-items", headers=self.headers).json()
        self.assertEqual(items[0]["clothingItemID"], self.gown.id)


if __name__ == "__main__":
    unittest.main()
