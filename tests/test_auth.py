"""Tests for the auth blueprint."""

import unittest
from unittest.mock import patch

from tests.helpers import ALICE, BlueprintTestCase


class AuthRoutesTestCase(BlueprintTestCase):
    """Test case for the auth blueprint."""

    def setUp(self):
        super().setUp()
        patcher = patch("firebase_admin.auth.verify_id_token")
        self.verify_id_token = patcher.start()
        self.addCleanup(patcher.stop)

    def test_session_login_creates_session_and_user(self):
        self.verify_id_token.return_value = {
            "uid": "dana",
            "email": "dana@example.com",
            "name": "Dana",
        }

        response = self.client.post("/auth/session_login", json={"idToken": "token"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["email"], "dana@example.com")
        user = self.db.collection("users").document("dana").get().to_dict()
        self.assertEqual(user, {"email": "dana@example.com", "displayName": "Dana"})
        with self.client.session_transaction() as sess:
            self.assertEqual(sess["user_id"], "dana")

        response = self.client.get("/group/")
        self.assertEqual(response.status_code, 200)

    def test_session_login_rejects_invalid_token(self):
        self.verify_id_token.side_effect = ValueError("bad token")

        response = self.client.post("/auth/session_login", json={"idToken": "token"})

        self.assertEqual(response.status_code, 401)

    def test_session_login_requires_token(self):
        response = self.client.post("/auth/session_login", json={})
        self.assertEqual(response.status_code, 400)

    def test_logout_clears_session(self):
        self.login()
        self.assertEqual(self.client.get("/group/").status_code, 200)

        self.client.post("/auth/logout")

        self.assertEqual(self.client.get("/group/").status_code, 401)

    def test_session_email_fills_missing_profile_email(self):
        self.db.collection("users").document("eve").set({"displayName": "Eve"})
        with self.client.session_transaction() as sess:
            sess["user_id"] = "eve"
            sess["email"] = ALICE

        response = self.client.get("/group/users/search?q=bob")

        self.assertEqual(response.status_code, 200)


    def test_session_login_refreshes_member_search(self):
        self.login()
        response = self.client.get("/group/users/search?q=dana")
        self.assertEqual(response.get_json()["results"], [])

        self.verify_id_token.return_value = {
            "uid": "dana",
            "email": "dana@example.com",
            "name": "Dana",
        }
        self.client.post("/auth/session_login", json={"idToken": "token"})
        self.login()

        response = self.client.get("/group/users/search?q=dana")
        self.assertEqual(
            response.get_json()["results"],
            [{"email": "dana@example.com", "name": "Dana"}],
        )


if __name__ == "__main__":
    unittest.main()
