import base64
import json
import unittest
import uuid

from tests import support  # noqa: F401

from services import user_access_service as access
from services.user_access_service import SessionAuth, create_session, get_session, remove_session


def _claims(token):
    encoded = token.split(".", 1)[0]
    return json.loads(base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)))


class SessionTokenTests(unittest.TestCase):
    def setUp(self):
        self.user_id = str(uuid.uuid4())

    def test_token_carries_only_staff_identity(self):
        token = create_session({"userID": self.user_id, "email": " Desk@Example.com ", "role": "owner"})

        self.assertEqual(set(_claims(token)), {"userID", "email", "expiresAt"})
        self.assertEqual(get_session(token), {"userID": self.user_id, "email": "desk@example.com"})
        self.assertEqual(SessionAuth(get_session(token)).get_current_user_id(), self.user_id)

    def test_tampered_or_garbage_tokens_are_rejected(self):
        token = create_session({"userID": self.user_id, "email": "desk@example.com"})
        encoded, signature = token.split(".", 1)
        forged = base64.urlsafe_b64encode(
            json.dumps({"userID": "someone-else", "email": "x@example.com", "expiresAt": 9e12}).encode()
        ).decode().rstrip("=")

        for candidate in (f"{forged}.{signature}", "not-a-token", f"{encoded}.é", ""):
            with self.subTest(candidate=candidate):
                self.assertIsNone(get_session(candidate))

    def test_logout_revokes_by_digest(self):
        token = create_session({"userID": self.user_id, "email": "desk@example.com"})
        remove_session(token)

        self.assertIsNone(get_session(token))
        revoked = json.loads(access._REVOKED_TOKENS_PATH.read_text(encoding="utf-8"))
        self.assertNotIn(token, revoked)
        self.assertIn(access._token_digest(token), revoked)

    def test_unsigned_token_is_not_recorded_on_logout(self):
        remove_session("forged.signature")
        if access._REVOKED_TOKENS_PATH.exists():
            revoked = json.loads(access._REVOKED_TOKENS_PATH.read_text(encoding="utf-8"))
            self.assertNotIn(access._token_digest("forged.signature"), revoked)


if __name__ == "__main__":
    unittest.main()
