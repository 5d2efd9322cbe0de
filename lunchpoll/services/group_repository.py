"""Persistence and membership operations for groups."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, cast

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPICallError

from lunchpoll.constants import (
    FIRESTORE_BATCH_LIMIT,
    GROUP_CREATED_AT,
    GROUP_CREATED_BY,
    GROUP_ID,
    GROUP_MEMBERS,
    GROUP_NAME,
    GROUP_POLLS,
    GROUP_RESTAURANTS,
    GROUPS_COLLECTION,
    POLL_GROUP_ID,
    POLLS_COLLECTION,
    TRANSACTION_BACKOFF_SECONDS,
    TRANSACTION_MAX_ATTEMPTS,
)
from lunchpoll.core.transactions import run_transaction
from lunchpoll.errors import (
    AppError,
    GroupNotFound,
    PartialCascadeFailure,
    Unauthenticated,
    ValidationError,
)
from lunchpoll.models import (
    Group,
    RestaurantAddOutcome,
    RestaurantAddResult,
    RestaurantRef,
)

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

logger = logging.getLogger(__name__)


def clean_unique(values: Iterable[str | None]) -> list[str]:
    """Strip values, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        if value and value.strip():
            seen.setdefault(value.strip(), None)
    return list(seen)


def _require_id(value: str | None, label: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{label} cannot be blank.")
    return value.strip()


class GroupRepository:
    """Service class for group CRUD, membership and cascade deletes."""

    def __init__(
        self,
        db: Client | None = None,
        max_attempts: int = TRANSACTION_MAX_ATTEMPTS,
        backoff_seconds: float = TRANSACTION_BACKOFF_SECONDS,
        batch_limit: int = FIRESTORE_BATCH_LIMIT,
    ) -> None:
        """Initialize the repository with an injected Firestore client."""
        self.db = db if db is not None else firestore.client()
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.batch_limit = batch_limit

    def _group_ref(self, group_id: str) -> DocumentReference:
        return self.db.collection(GROUPS_COLLECTION).document(group_id)

    def _poll_ref(self, poll_id: str) -> DocumentReference:
        return self.db.collection(POLLS_COLLECTION).document(poll_id)

    def _transact(self, body: Any, *args: Any) -> Any:
        return run_transaction(
            self.db,
            body,
            *args,
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
        )

    # -- reads -------------------------------------------------------------

    def get_group(self, group_id: str) -> Group:
        """Fetch a single group or raise GroupNotFound."""
        group_id = _require_id(group_id, "Group id")
        snapshot = cast("DocumentSnapshot", self._group_ref(group_id).get())
        if not snapshot.exists:
            raise GroupNotFound(group_id)
        return Group.from_snapshot(snapshot)

    def _groups_matching(self, field: str, op: str, value: str) -> list[Group]:
        query = self.db.collection(GROUPS_COLLECTION).where(
            filter=firestore.FieldFilter(field, op, value)
        )
        groups = []
        for doc in query.stream():
            try:
                groups.append(Group.from_snapshot(doc))
            except AppError as e:
                logger.error(f"Error converting document {doc.id} to Group: {e}")
        return groups

    def list_groups_for_member(self, email: str) -> list[Group]:
        """Fetch every group the user belongs to."""
        if not email:
            raise Unauthenticated()
        return self._groups_matching(GROUP_MEMBERS, "array_contains", email)

    def list_groups_created_by(self, email: str) -> list[Group]:
        """Fetch every group the user created."""
        if not email:
            raise Unauthenticated()
        return self._groups_matching(GROUP_CREATED_BY, "==", email)

    # -- writes ------------------------------------------------------------

    def create_group(
        self, name: str, member_emails: Iterable[str], creator_email: str | None
    ) -> Group:
        """Create a group whose members always include its creator.

        The document id is generated client-side so the group is written once
        with its ``id`` field already set.
        """
        if not creator_email:
            raise Unauthenticated()
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name cannot be blank.")

        members = clean_unique([*(member_emails or []), creator_email])
        group_ref = self.db.collection(GROUPS_COLLECTION).document()
        group_ref.set(
            {
                GROUP_ID: group_ref.id,
                GROUP_NAME: name,
                GROUP_MEMBERS: members,
                GROUP_CREATED_BY: creator_email,
                GROUP_CREATED_AT: firestore.SERVER_TIMESTAMP,
                GROUP_RESTAURANTS: [],
                GROUP_POLLS: [],
            }
        )
        logger.info(f"Created group {group_ref.id} with {len(members)} member(s).")
        return Group.from_snapshot(group_ref.get())

    def add_restaurants_to_group(
        self, group_id: str, restaurant_ids: Iterable[str]
    ) -> RestaurantAddResult:
        """Shortlist restaurants on a group, skipping ids it already has."""
        group_id = _require_id(group_id, "Group id")
        ids = clean_unique(restaurant_ids)
        if not ids:
            raise ValidationError("Select at least one restaurant.")

        result = self._transact(
            self._add_restaurants_in_transaction, self._group_ref(group_id), ids
        )
        if result.is_noop:
            logger.info(f"All {len(ids)} restaurant(s) already in group {group_id}.")
        return result

    @staticmethod
    def _add_restaurants_in_transaction(
        transaction: Transaction, group_ref: DocumentReference, ids: list[str]
    ) -> RestaurantAddResult:
        snapshot = group_ref.get(transaction=transaction)
        if not snapshot.exists:
            raise GroupNotFound(group_ref.id)
        existing = Group.from_snapshot(snapshot).restaurant_ids

        to_add = [rid for rid in ids if rid not in existing]
        skipped = tuple(rid for rid in ids if rid in existing)
        if not to_add:
            return RestaurantAddResult(RestaurantAddOutcome.DUPLICATE, skipped=skipped)

        # The read above is in the transaction's read set, so a concurrent
        # adder forces a retry and the dedup stays keyed on restaurant_id.
        transaction.update(
            group_ref,
            {
                GROUP_RESTAURANTS: firestore.ArrayUnion(
                    [RestaurantRef(rid).to_dict() for rid in to_add]
                )
            },
        )
        return RestaurantAddResult(
            RestaurantAddOutcome.ADDED, added=tuple(to_add), skipped=skipped
        )

    def update_members(self, group_id: str, new_members: Iterable[str]) -> list[str]:
        """Replace a group's member list; the last writer wins."""
        group_id = _require_id(group_id, "Group id")
        members = clean_unique(new_members)
        if not members:
            raise ValidationError("A group needs at least one member.")

        group_ref = self._group_ref(group_id)
        if not cast("DocumentSnapshot", group_ref.get()).exists:
            raise GroupNotFound(group_id)
        group_ref.update({GROUP_MEMBERS: members})
        return members

    def leave_group(self, group_id: str, user_email: str | None) -> bool:
        """Remove a user from a group, deleting the group when nobody is left.

        Returns True when the group (and its polls) were deleted.
        """
        if not user_email:
            raise Unauthenticated()
        group_id = _require_id(group_id, "Group id")

        deleted = self._transact(
            self._leave_in_transaction, self._group_ref(group_id), user_email
        )
        if deleted:
            logger.info(f"Last member left group {group_id}; group deleted.")
            self._sweep_group_polls(group_id)
        return deleted

    def _leave_in_transaction(
        self, transaction: Transaction, group_ref: DocumentReference, email: str
    ) -> bool:
        snapshot = group_ref.get(transaction=transaction)
        if not snapshot.exists:
            raise GroupNotFound(group_ref.id)
        group = Group.from_snapshot(snapshot)
        if email not in group.members:
            return False

        remaining = [m for m in group.members if m != email]
        if remaining:
            transaction.update(group_ref, {GROUP_MEMBERS: remaining})
            return False

        self._delete_group_in_transaction(transaction, group_ref, group)
        return True

    def delete_group(self, group_id: str) -> None:
        """Delete a group and every poll that belongs to it.

        No ownership check happens here; callers decide who may delete.
        """
        group_id = _require_id(group_id, "Group id")
        self._transact(self._delete_in_transaction, self._group_ref(group_id))
        self._sweep_group_polls(group_id)

    def _delete_in_transaction(
        self, transaction: Transaction, group_ref: DocumentReference
    ) -> None:
        snapshot = group_ref.get(transaction=transaction)
        if not snapshot.exists:
            return
        self._delete_group_in_transaction(
            transaction, group_ref, Group.from_snapshot(snapshot)
        )

    def _delete_group_in_transaction(
        self, transaction: Transaction, group_ref: DocumentReference, group: Group
    ) -> None:
        """Queue deletion of the group and the polls it embeds.

        Polls past the write limit are left to the follow-up sweep.
        """
        for poll in group.polls[: self.batch_limit - 1]:
            transaction.delete(self._poll_ref(poll.id))
        transaction.delete(group_ref)

    # -- cascade sweeps ----------------------------------------------------

    def _delete_in_batches(self, refs: list[DocumentReference]) -> list[str]:
        """Delete documents in batches; return the ids that could not be deleted."""
        for start in range(0, len(refs), self.batch_limit):
            chunk = refs[start : start + self.batch_limit]
            batch = self.db.batch()
            for ref in chunk:
                batch.delete(ref)
            try:
                batch.commit()
            except GoogleAPICallError as e:
                logger.error(f"Error deleting poll documents: {e}")
                return [ref.id for ref in refs[start:]]
        return []

    def _sweep_group_polls(self, group_id: str) -> None:
        """Delete poll documents that still point at a deleted group."""
        query = self.db.collection(POLLS_COLLECTION).where(
            filter=firestore.FieldFilter(POLL_GROUP_ID, "==", group_id)
        )
        refs = [doc.reference for doc in query.stream()]
        if not refs:
            return
        logger.warning(f"Sweeping {len(refs)} poll(s) left behind by group {group_id}.")
        orphaned = self._delete_in_batches(refs)
        if orphaned:
            raise PartialCascadeFailure(group_id, orphaned)

    def sweep_orphaned_polls(self) -> list[str]:
        """Delete every poll whose group no longer exists; return their ids."""
        polls_by_group: dict[str, list[DocumentReference]] = {}
        for doc in self.db.collection(POLLS_COLLECTION).stream():
            group_id = (doc.to_dict() or {}).get(POLL_GROUP_ID) or ""
            polls_by_group.setdefault(group_id, []).append(doc.reference)

        doomed: list[DocumentReference] = []
        for group_id, refs in polls_by_group.items():
            if not group_id or not self._group_ref(group_id).get().exists:
                doomed.extend(refs)

        if not doomed:
            return []
        failed = set(self._delete_in_batches(doomed))
        deleted = [ref.id for ref in doomed if ref.id not in failed]
        logger.info(f"Removed {len(deleted)} orphaned poll(s).")
        if failed:
            logger.error(f"{len(failed)} orphaned poll(s) could not be removed.")
        return deleted
