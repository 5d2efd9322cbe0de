"""Data models for groups, polls and their nested records."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, TypedDict

from lunchpoll.constants import (
    GROUP_CREATED_AT,
    GROUP_CREATED_BY,
    GROUP_ID,
    GROUP_MEMBERS,
    GROUP_NAME,
    GROUP_POLLS,
    GROUP_RESTAURANTS,
    OPTION_RESTAURANT_ID,
    OPTION_VOTED_USERS,
    POLL_CREATED_AT,
    POLL_CREATED_BY,
    POLL_GROUP_ID,
    POLL_ID,
    POLL_IS_ENDED,
    POLL_IS_ENDED_LEGACY,
    POLL_RESTAURANTS,
    REF_COUNT,
    REF_RESTAURANT_ID,
)
from lunchpoll.core.types import FirestoreDocument
from lunchpoll.errors import FailedToDeserialize


class RestaurantOptionDocument(TypedDict):
    """A restaurant option as stored inside a poll."""

    restaurantId: str
    votedUsers: list[str]


class PollDocument(FirestoreDocument, total=False):
    """A poll document in Firestore, or its copy embedded in a group."""

    groupId: str
    isEnded: bool
    restaurants: list[RestaurantOptionDocument]


class VoteState(enum.Enum):
    """Where a voter stands relative to one option of a poll."""

    NOT_VOTED = "not_voted"
    VOTED_HERE = "voted_here"
    VOTED_ELSEWHERE = "voted_elsewhere"


def _string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise FailedToDeserialize(f"Field '{field_name}' must be a list of strings.")
    return list(value)


@dataclass(frozen=True)
class RestaurantOption:
    """One candidate restaurant within a poll."""

    restaurant_id: str
    voted_users: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> RestaurantOption:
        """Build an option from its stored form."""
        if not isinstance(data, dict):
            raise FailedToDeserialize("Restaurant option must be a map.")
        restaurant_id = data.get(OPTION_RESTAURANT_ID)
        if not isinstance(restaurant_id, str) or not restaurant_id:
            raise FailedToDeserialize("Restaurant option is missing its restaurantId.")
        voted = _string_list(data.get(OPTION_VOTED_USERS), OPTION_VOTED_USERS)
        return cls(restaurant_id=restaurant_id, voted_users=tuple(voted))

    def to_dict(self) -> RestaurantOptionDocument:
        """Return the stored form of the option."""
        return {
            OPTION_RESTAURANT_ID: self.restaurant_id,
            OPTION_VOTED_USERS: list(self.voted_users),
        }

    @property
    def vote_count(self) -> int:
        return len(self.voted_users)


@dataclass(frozen=True)
class Poll:
    """A round of voting over a fixed set of restaurant options."""

    id: str
    group_id: str
    created_by: str = ""
    created_at: Any = None
    is_ended: bool = False
    restaurants: tuple[RestaurantOption, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Any, poll_id: str | None = None) -> Poll:
        """Build a poll from a stored document or an embedded copy.

        ``poll_id`` overrides the stored ``id`` field, which lets a standalone
        document be read by its document id.
        """
        if not isinstance(data, dict):
            raise FailedToDeserialize("Poll must be a map.")
        pid = poll_id or data.get(POLL_ID)
        if not isinstance(pid, str) or not pid:
            raise FailedToDeserialize("Poll is missing its id.")

        raw_options = data.get(POLL_RESTAURANTS) or []
        if not isinstance(raw_options, list):
            raise FailedToDeserialize(f"Poll {pid} restaurants must be a list.")

        is_ended = data.get(POLL_IS_ENDED, data.get(POLL_IS_ENDED_LEGACY, False))
        if not isinstance(is_ended, bool):
            raise FailedToDeserialize(f"Poll {pid} has a non-boolean ended flag.")

        return cls(
            id=pid,
            group_id=str(data.get(POLL_GROUP_ID) or ""),
            created_by=str(data.get(POLL_CREATED_BY) or ""),
            created_at=data.get(POLL_CREATED_AT),
            is_ended=is_ended,
            restaurants=tuple(RestaurantOption.from_dict(o) for o in raw_options),
        )

    def to_dict(self) -> PollDocument:
        """Return the stored form of the poll."""
        return {
            POLL_ID: self.id,
            POLL_GROUP_ID: self.group_id,
            POLL_CREATED_BY: self.created_by,
            POLL_CREATED_AT: self.created_at,
            POLL_IS_ENDED: self.is_ended,
            POLL_RESTAURANTS: [option.to_dict() for option in self.restaurants],
        }

    def with_restaurants(self, restaurants: tuple[RestaurantOption, ...]) -> Poll:
        """Return a copy of the poll with its options replaced."""
        return replace(self, restaurants=restaurants)

    def option(self, restaurant_id: str) -> RestaurantOption | None:
        """Return the option for a restaurant, if the poll offers it."""
        for option in self.restaurants:
            if option.restaurant_id == restaurant_id:
                return option
        return None

    def vote_state(self, restaurant_id: str, voter_email: str) -> VoteState:
        """Classify a voter against one option of this poll."""
        for option in self.restaurants:
            if voter_email in option.voted_users:
                if option.restaurant_id == restaurant_id:
                    return VoteState.VOTED_HERE
                return VoteState.VOTED_ELSEWHERE
        return VoteState.NOT_VOTED

    def choice_of(self, voter_email: str) -> str | None:
        """Return the restaurant a voter picked, or None."""
        for option in self.restaurants:
            if voter_email in option.voted_users:
                return option.restaurant_id
        return None


class RestaurantRefDocument(TypedDict):
    """A shortlist entry as stored on a group."""

    restaurant_id: str
    count: int


class GroupDocument(FirestoreDocument, total=False):
    """A group document in Firestore."""

    name: str
    members: list[str]
    restaurants: list[RestaurantRefDocument]
    polls: list[PollDocument]


@dataclass(frozen=True)
class RestaurantRef:
    """An entry in a group's restaurant shortlist."""

    restaurant_id: str
    count: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> RestaurantRef:
        """Build a ref from its stored form."""
        if not isinstance(data, dict):
            raise FailedToDeserialize("Restaurant ref must be a map.")
        restaurant_id = data.get(REF_RESTAURANT_ID)
        if not isinstance(restaurant_id, str) or not restaurant_id:
            raise FailedToDeserialize("Restaurant ref is missing its restaurant_id.")
        count = data.get(REF_COUNT, 0)
        if not isinstance(count, int):
            raise FailedToDeserialize(f"Restaurant ref {restaurant_id} count is not an int.")
        return cls(restaurant_id=restaurant_id, count=count)

    def to_dict(self) -> RestaurantRefDocument:
        """Return the stored form of the ref."""
        return {REF_RESTAURANT_ID: self.restaurant_id, REF_COUNT: self.count}


@dataclass(frozen=True)
class Group:
    """A set of users with a shared restaurant shortlist and polls."""

    id: str
    name: str
    members: tuple[str, ...]
    created_by: str
    created_at: Any = None
    restaurants: tuple[RestaurantRef, ...] = field(default_factory=tuple)
    polls: tuple[Poll, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Any, group_id: str | None = None) -> Group:
        """Build a group from its document data.

        The document id wins over the stored ``id`` field, so documents written
        by older clients before their id was back-filled still load.
        """
        if not isinstance(data, dict):
            raise FailedToDeserialize("Group must be a map.")
        gid = group_id or data.get(GROUP_ID)
        if not isinstance(gid, str) or not gid:
            raise FailedToDeserialize("Group is missing its id.")

        members = data.get(GROUP_MEMBERS) or []
        if not isinstance(members, list) or not all(isinstance(m, str) for m in members):
            raise FailedToDeserialize(f"Group {gid} members must be a list of emails.")

        raw_refs = data.get(GROUP_RESTAURANTS) or []
        raw_polls = data.get(GROUP_POLLS) or []
        if not isinstance(raw_refs, list) or not isinstance(raw_polls, list):
            raise FailedToDeserialize(f"Group {gid} has malformed restaurants or polls.")

        return cls(
            id=gid,
            name=str(data.get(GROUP_NAME) or ""),
            members=tuple(members),
            created_by=str(data.get(GROUP_CREATED_BY) or ""),
            created_at=data.get(GROUP_CREATED_AT),
            restaurants=tuple(RestaurantRef.from_dict(r) for r in raw_refs),
            polls=tuple(Poll.from_dict(p) for p in raw_polls),
        )

    @classmethod
    def from_snapshot(cls, snapshot: Any) -> Group:
        """Build a group from an existing document snapshot."""
        return cls.from_dict(snapshot.to_dict(), group_id=snapshot.id)

    def to_dict(self) -> GroupDocument:
        """Return the stored form of the group."""
        return {
            GROUP_ID: self.id,
            GROUP_NAME: self.name,
            GROUP_MEMBERS: list(self.members),
            GROUP_CREATED_BY: self.created_by,
            GROUP_CREATED_AT: self.created_at,
            GROUP_RESTAURANTS: [ref.to_dict() for ref in self.restaurants],
            GROUP_POLLS: [poll.to_dict() for poll in self.polls],
        }

    @property
    def restaurant_ids(self) -> set[str]:
        return {ref.restaurant_id for ref in self.restaurants}

    def find_poll(self, poll_id: str) -> Poll | None:
        """Return the embedded copy of a poll, if the group has it."""
        for poll in self.polls:
            if poll.id == poll_id:
                return poll
        return None


class RestaurantAddOutcome(enum.Enum):
    """How an add-restaurants request ended."""

    ADDED = "added"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class RestaurantAddResult:
    """Result of adding restaurants to a group's shortlist.

    A request whose ids are all already shortlisted is a successful no-op with
    the DUPLICATE outcome rather than an error.
    """

    outcome: RestaurantAddOutcome
    added: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()

    @property
    def is_noop(self) -> bool:
        return self.outcome is RestaurantAddOutcome.DUPLICATE
