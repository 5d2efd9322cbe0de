"""Tests for GroupRepository."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from google.api_core.exceptions import ServiceUnavailable
from mockfirestore import MockFirestore

from lunchpoll.errors import (
    GroupNotFound,
    PartialCascadeFailure,
    Unauthenticated,
    ValidationError,
)
from lunchpoll.models import RestaurantAddOutcome
from lunchpoll.services import GroupRepository
from tests.mock_utils import (
    FIXED_NOW,
    MockBatch,
    attach_transactions,
    make_firestore_module,
    patch_mockfirestore,
)


def poll_doc(poll_id, group_id, voters=None):
    return {
        "id": poll_id,
        "groupId": group_id,
        "createdBy": "a@example.com",
        "createdAt": FIXED_NOW,
        "isEnded": False,
        "restaurants": [{"restaurantId": "r1", "votedUsers": voters or []}],
    }


class GroupRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patch_mockfirestore()
        self.db = MockFirestore()
        attach_transactions(self.db)

        fake_firestore = make_firestore_module(self.db)
        for target in (
            "lunchpoll.services.group_repository.firestore",
            "lunchpoll.core.transactions.firestore",
        ):
            patcher = patch(target, new=fake_firestore)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.repo = GroupRepository(self.db, backoff_seconds=0)

    def seed_group(self, group_id="g1", members=None, polls=None, restaurants=None):
        data = {
            "id": group_id,
            "name": "Lunch Crew",
            "members": members or ["a@example.com", "b@example.com"],
            "createdBy": "a@example.com",
            "createdAt": FIXED_NOW,
            "restaurants": restaurants or [],
            "polls": polls or [],
        }
        self.db.collection("groups").document(group_id).set(data)
        for poll in data["polls"]:
            self.db.collection("polls").document(poll["id"]).set(poll)
        return data

    def group_data(self, group_id="g1"):
        return self.db.collection("groups").document(group_id).get().to_dict()

    def poll_exists(self, poll_id):
        return self.db.collection("polls").document(poll_id).get().exists

    # -- create ------------------------------------------------------------

    def test_create_group_includes_creator_once(self) -> None:
        group = self.repo.create_group(
            " Lunch Crew ",
            ["b@example.com", "a@example.com", "b@example.com", "  "],
            "a@example.com",
        )

        self.assertEqual(group.name, "Lunch Crew")
        self.assertEqual(group.members, ("b@example.com", "a@example.com"))
        self.assertEqual(group.created_by, "a@example.com")
        self.assertEqual(group.created_at, FIXED_NOW)
        stored = self.group_data(group.id)
        self.assertEqual(stored["id"], group.id)
        self.assertEqual(stored["restaurants"], [])
        self.assertEqual(stored["polls"], [])

    def test_create_group_adds_missing_creator(self) -> None:
        group = self.repo.create_group("Team", ["b@example.com"], "a@example.com")
        self.assertEqual(group.members, ("b@example.com", "a@example.com"))

    def test_create_group_without_user_writes_nothing(self) -> None:
        with self.assertRaises(Unauthenticated):
            self.repo.create_group("Team", ["b@example.com"], None)
        self.assertEqual(list(self.db.collection("groups").stream()), [])

    def test_create_group_rejects_blank_name(self) -> None:
        with self.assertRaises(ValidationError):
            self.repo.create_group("   ", [], "a@example.com")

    # -- reads -------------------------------------------------------------

    def test_get_group_not_found(self) -> None:
        with self.assertRaises(GroupNotFound):
            self.repo.get_group("missing")

    def test_list_groups_for_member_and_creator(self) -> None:
        self.seed_group("g1", members=["a@example.com", "b@example.com"])
        self.seed_group("g2", members=["b@example.com"])

        member_of = self.repo.list_groups_for_member("b@example.com")
        self.assertEqual({g.id for g in member_of}, {"g1", "g2"})
        created = self.repo.list_groups_created_by("a@example.com")
        self.assertEqual({g.id for g in created}, {"g1", "g2"})
        self.assertEqual(self.repo.list_groups_for_member("c@example.com"), [])

    def test_list_groups_skips_malformed_documents(self) -> None:
        self.seed_group("g1")
        self.db.collection("groups").document("bad").set(
            {"members": ["a@example.com"], "createdBy": "a@example.com", "polls": "x"}
        )
        groups = self.repo.list_groups_for_member("a@example.com")
        self.assertEqual([g.id for g in groups], ["g1"])

    # -- restaurants -------------------------------------------------------

    def test_add_restaurants_dedups_on_restaurant_id(self) -> None:
        self.seed_group(restaurants=[{"restaurant_id": "r1", "count": 3}])

        result = self.repo.add_restaurants_to_group("g1", ["r1", "r2", "r2", "r3"])

        self.assertEqual(result.outcome, RestaurantAddOutcome.ADDED)
        self.assertEqual(result.added, ("r2", "r3"))
        self.assertEqual(result.skipped, ("r1",))
        self.assertEqual(
            self.group_data()["restaurants"],
            [
                {"restaurant_id": "r1", "count": 3},
                {"restaurant_id": "r2", "count": 0},
                {"restaurant_id": "r3", "count": 0},
            ],
        )

    def test_add_restaurants_all_duplicates_is_noop(self) -> None:
        self.seed_group(restaurants=[{"restaurant_id": "r1", "count": 0}])

        result = self.repo.add_restaurants_to_group("g1", ["r1"])

        self.assertTrue(result.is_noop)
        self.assertEqual(result.outcome, RestaurantAddOutcome.DUPLICATE)
        self.assertEqual(len(self.group_data()["restaurants"]), 1)

    def test_add_restaurants_requires_ids_and_group(self) -> None:
        self.seed_group()
        with self.assertRaises(ValidationError):
            self.repo.add_restaurants_to_group("g1", ["", "  "])
        with self.assertRaises(GroupNotFound):
            self.repo.add_restaurants_to_group("missing", ["r1"])

    # -- members -----------------------------------------------------------

    def test_update_members_replaces_list(self) -> None:
        self.seed_group()
        members = self.repo.update_members("g1", ["c@example.com", "c@example.com"])
        self.assertEqual(members, ["c@example.com"])
        self.assertEqual(self.group_data()["members"], ["c@example.com"])

    def test_update_members_rejects_empty_list(self) -> None:
        self.seed_group()
        with self.assertRaises(ValidationError):
            self.repo.update_members("g1", [])

    def test_leave_group_removes_only_the_caller(self) -> None:
        self.seed_group(polls=[poll_doc("p1", "g1")])

        deleted = self.repo.leave_group("g1", "b@example.com")

        self.assertFalse(deleted)
        self.assertEqual(self.group_data()["members"], ["a@example.com"])
        self.assertTrue(self.poll_exists("p1"))

    def test_leave_group_as_non_member_is_noop(self) -> None:
        self.seed_group()
        self.assertFalse(self.repo.leave_group("g1", "z@example.com"))
        self.assertEqual(len(self.group_data()["members"]), 2)

    def test_last_member_leaving_deletes_group_and_polls(self) -> None:
        self.seed_group(
            members=["a@example.com"],
            polls=[poll_doc("p1", "g1"), poll_doc("p2", "g1")],
        )

        deleted = self.repo.leave_group("g1", "a@example.com")

        self.assertTrue(deleted)
        self.assertFalse(self.db.collection("groups").document("g1").get().exists)
        self.assertFalse(self.poll_exists("p1"))
        self.assertFalse(self.poll_exists("p2"))

    def test_leave_group_requires_user(self) -> None:
        with self.assertRaises(Unauthenticated):
            self.repo.leave_group("g1", None)

    # -- delete ------------------------------------------------------------

    def test_delete_group_cascades_to_polls(self) -> None:
        self.seed_group(polls=[poll_doc("p1", "g1")])
        # A poll document that never made it into the group's array.
        self.db.collection("polls").document("stray").set(poll_doc("stray", "g1"))
        self.db.collection("polls").document("other").set(poll_doc("other", "g2"))

        self.repo.delete_group("g1")

        self.assertFalse(self.db.collection("groups").document("g1").get().exists)
        self.assertFalse(self.poll_exists("p1"))
        self.assertFalse(self.poll_exists("stray"))
        self.assertTrue(self.poll_exists("other"))

    def test_delete_group_sweeps_polls_past_the_write_limit(self) -> None:
        repo = GroupRepository(self.db, backoff_seconds=0, batch_limit=2)
        self.seed_group(polls=[poll_doc(f"p{i}", "g1") for i in range(5)])

        repo.delete_group("g1")

        for i in range(5):
            self.assertFalse(self.poll_exists(f"p{i}"))

    def test_delete_group_reports_orphaned_polls(self) -> None:
        repo = GroupRepository(self.db, backoff_seconds=0, batch_limit=2)
        self.seed_group(polls=[poll_doc(f"p{i}", "g1") for i in range(3)])

        failing_batch = MockBatch(self.db)
        failing_batch.commit = MagicMock(side_effect=ServiceUnavailable("down"))
        self.db.batch = MagicMock(return_value=failing_batch)

        with self.assertRaises(PartialCascadeFailure) as cm:
            repo.delete_group("g1")

        self.assertEqual(cm.exception.group_id, "g1")
        self.assertEqual(sorted(cm.exception.orphaned_poll_ids), ["p1", "p2"])
        self.assertFalse(self.db.collection("groups").document("g1").get().exists)

    def test_delete_missing_group_is_noop(self) -> None:
        self.repo.delete_group("missing")

    def test_sweep_orphaned_polls(self) -> None:
        self.seed_group("g1")
        self.db.collection("polls").document("kept").set(poll_doc("kept", "g1"))
        self.db.collection("polls").document("gone").set(poll_doc("gone", "g9"))

        deleted = self.repo.sweep_orphaned_polls()

        self.assertEqual(deleted, ["gone"])
        self.assertTrue(self.poll_exists("kept"))
        self.assertFalse(self.poll_exists("gone"))


if __name__ == "__main__":
    unittest.main()
