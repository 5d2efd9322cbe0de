"""Shared fixtures for blueprint tests."""

import unittest
from unittest.mock import patch

from mockfirestore import MockFirestore

from lunchpoll import create_app
from tests.mock_utils import (
    FIXED_NOW,
    attach_transactions,
    make_firestore_module,
    patch_mockfirestore,
)

ALICE = "alice@example.com"
BOB = "bob@example.com"
CAROL = "carol@example.com"

USERS = {
    "alice": {"email": ALICE, "displayName": "Alice"},
    "bob": {"email": BOB, "displayName": "Bob"},
    "carol": {"email": CAROL, "displayName": "Carol"},
}

FIRESTORE_TARGETS = (
    "lunchpoll.firestore",
    "lunchpoll.utils.firestore",
    "lunchpoll.auth.routes.firestore",
    "lunchpoll.group.routes.firestore",
    "lunchpoll.services.group_repository.firestore",
    "lunchpoll.services.voting.firestore",
    "lunchpoll.services.user_directory.firestore",
    "lunchpoll.core.transactions.firestore",
)


class BlueprintTestCase(unittest.TestCase):
    """Flask test client backed by an in-memory Firestore."""

    def setUp(self):
        patch_mockfirestore()
        self.db = MockFirestore()
        attach_transactions(self.db)

        fake_firestore = make_firestore_module(self.db)
        patchers = [patch("firebase_admin.initialize_app")]
        patchers += [patch(target, new=fake_firestore) for target in FIRESTORE_TARGETS]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)

        for uid, data in USERS.items():
            self.db.collection("users").document(uid).set(data)

        self.app = create_app(
            {
                "TESTING": True,
                "WTF_CSRF_ENABLED": False,
                "TRANSACTION_BACKOFF_SECONDS": 0,
            }
        )
        self.client = self.app.test_client()

    def login(self, uid="alice"):
        with self.client.session_transaction() as sess:
            sess["user_id"] = uid
            sess["email"] = USERS[uid]["email"]

    def seed_group(self, group_id="g1", members=(ALICE, BOB), created_by=ALICE, polls=()):
        self.db.collection("groups").document(group_id).set(
            {
                "id": group_id,
                "name": "Lunch Crew",
                "members": list(members),
                "createdBy": created_by,
                "createdAt": FIXED_NOW,
                "restaurants": [{"restaurant_id": "r1", "count": 0}],
                "polls": list(polls),
            }
        )
        for poll in polls:
            self.db.collection("polls").document(poll["id"]).set(poll)

    def group_data(self, group_id="g1"):
        return self.db.collection("groups").document(group_id).get().to_dict()
