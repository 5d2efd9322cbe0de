"""Transactional vote state machine over the two copies of a poll.

A poll lives in ``polls/{id}`` and, denormalized for fast group reads, in the
``polls`` array of its group. Everything that changes poll state goes through
:meth:`PollVotingEngine._write_poll`, which rewrites both copies in one
transaction.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, cast

from firebase_admin import firestore

from lunchpoll.constants import (
    GROUP_POLLS,
    GROUPS_COLLECTION,
    POLL_ID,
    POLL_IS_ENDED,
    POLL_RESTAURANTS,
    POLLS_COLLECTION,
    TRANSACTION_BACKOFF_SECONDS,
    TRANSACTION_MAX_ATTEMPTS,
)
from lunchpoll.core.transactions import run_transaction
from lunchpoll.errors import (
    FailedToDeserialize,
    GroupNotFound,
    PollEnded,
    PollNotFound,
    PollNotFoundInGroup,
    ValidationError,
)
from lunchpoll.models import Group, Poll, RestaurantOption, VoteState

from .group_repository import clean_unique

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

logger = logging.getLogger(__name__)

PollMutation = Callable[[Poll], Poll]


def apply_vote(
    options: Iterable[RestaurantOption], restaurant_id: str, voter_email: str
) -> tuple[RestaurantOption, ...]:
    """Cast, switch or retract one voter's choice.

    Voting for the option the voter already picked retracts it. Any other vote
    lands on ``restaurant_id`` and is removed from every other option, so the
    voter ends up in at most one option.
    """
    updated = []
    for option in options:
        without_voter = tuple(u for u in option.voted_users if u != voter_email)
        if option.restaurant_id != restaurant_id:
            updated.append(replace(option, voted_users=without_voter))
        elif voter_email in option.voted_users:
            updated.append(replace(option, voted_users=without_voter))
        else:
            updated.append(replace(option, voted_users=(*without_voter, voter_email)))
    return tuple(updated)


class PollVotingEngine:
    """Service class for poll creation, voting and closing."""

    def __init__(
        self,
        db: Client | None = None,
        max_attempts: int = TRANSACTION_MAX_ATTEMPTS,
        backoff_seconds: float = TRANSACTION_BACKOFF_SECONDS,
    ) -> None:
        """Initialize the engine with an injected Firestore client."""
        self.db = db if db is not None else firestore.client()
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

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

    def get_poll(self, poll_id: str, group_id: str | None = None) -> Poll:
        """Read a poll, falling back to the group's embedded copy."""
        if not poll_id or not poll_id.strip():
            raise ValidationError("Poll id cannot be blank.")

        snapshot = cast("DocumentSnapshot", self._poll_ref(poll_id).get())
        if snapshot.exists:
            return Poll.from_dict(snapshot.to_dict(), poll_id=poll_id)
        if not group_id:
            raise PollNotFound(poll_id)

        group_snapshot = cast("DocumentSnapshot", self._group_ref(group_id).get())
        if not group_snapshot.exists:
            raise GroupNotFound(group_id)
        embedded = Group.from_snapshot(group_snapshot).find_poll(poll_id)
        if embedded is None:
            raise PollNotFoundInGroup(poll_id, group_id)
        logger.warning(f"Poll {poll_id} not found in polls collection, using group poll.")
        return embedded

    def create_poll(
        self, group_id: str, restaurant_ids: Iterable[str], creator_email: str | None
    ) -> Poll:
        """Create a poll over restaurant candidates in both locations at once."""
        ids = clean_unique(restaurant_ids)
        if not group_id or not group_id.strip() or not ids or not creator_email:
            raise ValidationError("Invalid parameters for creating poll.")

        poll_ref = self.db.collection(POLLS_COLLECTION).document()
        poll = Poll(
            id=poll_ref.id,
            group_id=group_id,
            created_by=creator_email,
            # Server timestamps are not allowed inside arrays.
            created_at=datetime.datetime.now(datetime.timezone.utc),
            restaurants=tuple(RestaurantOption(rid) for rid in ids),
        )
        self._transact(self._create_in_transaction, self._group_ref(group_id), poll_ref, poll)
        logger.info(
            f"Created poll {poll.id} in group {group_id} with {len(ids)} restaurant(s)."
        )
        return poll

    @staticmethod
    def _create_in_transaction(
        transaction: Transaction,
        group_ref: DocumentReference,
        poll_ref: DocumentReference,
        poll: Poll,
    ) -> None:
        if not group_ref.get(transaction=transaction).exists:
            raise GroupNotFound(group_ref.id)
        document = poll.to_dict()
        transaction.set(poll_ref, document)
        transaction.update(group_ref, {GROUP_POLLS: firestore.ArrayUnion([document])})

    def cast_or_retract(
        self,
        poll_id: str,
        restaurant_id: str,
        voter_email: str | None,
        group_id: str | None = None,
    ) -> Poll:
        """Toggle a voter's choice of ``restaurant_id`` and return the new poll.

        ``group_id`` is only needed when the standalone poll document is
        missing; otherwise it is taken from the poll itself. An ended poll is
        rejected before any transaction is opened.
        """
        if not restaurant_id or not voter_email:
            raise ValidationError("A restaurant and a voter are required.")

        current = self.get_poll(poll_id, group_id)
        if current.is_ended:
            raise PollEnded(poll_id)
        group_id = group_id or current.group_id
        if not group_id:
            raise FailedToDeserialize(f"Poll {poll_id} does not name its group.")

        state = current.vote_state(restaurant_id, voter_email)
        logger.debug(f"Voter {voter_email} is {state.value} for {restaurant_id}.")

        def vote(poll: Poll) -> Poll:
            if poll.is_ended:
                raise PollEnded(poll.id)
            if poll.option(restaurant_id) is None:
                raise ValidationError(
                    f"Restaurant {restaurant_id} is not an option in poll {poll.id}."
                )
            return poll.with_restaurants(
                apply_vote(poll.restaurants, restaurant_id, voter_email)
            )

        updated = self._write_poll(group_id, poll_id, vote)
        if updated.vote_state(restaurant_id, voter_email) is VoteState.VOTED_HERE:
            logger.info(f"Vote recorded for {restaurant_id} in poll {poll_id}.")
        else:
            logger.info(f"Vote retracted for {restaurant_id} in poll {poll_id}.")
        return updated

    def end_poll(self, poll_id: str, group_id: str | None = None) -> Poll:
        """Set the terminal flag on a poll; ending twice is harmless."""
        current = self.get_poll(poll_id, group_id)
        group_id = group_id or current.group_id
        if not group_id:
            raise FailedToDeserialize(f"Poll {poll_id} does not name its group.")
        return self._write_poll(group_id, poll_id, lambda p: replace(p, is_ended=True))

    def _write_poll(self, group_id: str, poll_id: str, mutate: PollMutation) -> Poll:
        """Apply ``mutate`` to a poll and persist it to both of its locations."""
        return self._transact(
            self._write_poll_in_transaction,
            self._group_ref(group_id),
            self._poll_ref(poll_id),
            mutate,
        )

    @staticmethod
    def _write_poll_in_transaction(
        transaction: Transaction,
        group_ref: DocumentReference,
        poll_ref: DocumentReference,
        mutate: PollMutation,
    ) -> Poll:
        poll_id = poll_ref.id
        group_snapshot = group_ref.get(transaction=transaction)
        if not group_snapshot.exists:
            raise GroupNotFound(group_ref.id)
        group_data: dict[str, Any] = group_snapshot.to_dict() or {}
        embedded = Group.from_dict(group_data, group_id=group_ref.id).find_poll(poll_id)
        if embedded is None:
            raise PollNotFoundInGroup(poll_id, group_ref.id)

        poll_snapshot = poll_ref.get(transaction=transaction)
        if poll_snapshot.exists:
            poll = Poll.from_dict(poll_snapshot.to_dict(), poll_id=poll_id)
        else:
            logger.warning(
                f"Poll {poll_id} not found in polls collection, using group poll."
            )
            poll = embedded

        updated = mutate(poll)
        options = [option.to_dict() for option in updated.restaurants]

        transaction.set(poll_ref, updated.to_dict())

        patched_polls = []
        for raw in group_data.get(GROUP_POLLS) or []:
            if isinstance(raw, dict) and raw.get(POLL_ID) == poll_id:
                raw = {**raw, POLL_RESTAURANTS: options, POLL_IS_ENDED: updated.is_ended}
            patched_polls.append(raw)
        transaction.update(group_ref, {GROUP_POLLS: patched_polls})
        return updated
