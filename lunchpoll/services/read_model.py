"""Live view of one group and its polls, fed by Firestore snapshots.

Snapshot callbacks arrive on the Firestore watch thread while commands come
from request threads. State changes happen under a lock, subscribers only ever
see immutable :class:`GroupDetailState` values, and deliveries reach them in
the order the changes were made.
"""

from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable

from google.api_core.exceptions import GoogleAPICallError

from lunchpoll.constants import GROUPS_COLLECTION
from lunchpoll.errors import AppError
from lunchpoll.models import Group, Poll

from .user_directory import UserDirectory, UserSearchResult, search_users

if TYPE_CHECKING:
    from collections.abc import Iterable

    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)

Subscriber = Callable[["GroupDetailState"], None]

_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


@dataclass(frozen=True)
class GroupDetailState:
    """Everything a group detail screen renders."""

    is_loading: bool = True
    group: Group | None = None
    polls: tuple[Poll, ...] = ()
    error: str | None = None
    show_create_poll_dialog: bool = False
    show_edit_members_dialog: bool = False
    search_results: tuple[UserSearchResult, ...] = ()
    all_users: tuple[UserSearchResult, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly form of the state."""
        return {
            "is_loading": self.is_loading,
            "group": self.group.to_dict() if self.group else None,
            "polls": [poll.to_dict() for poll in self.polls],
            "error": self.error,
            "show_create_poll_dialog": self.show_create_poll_dialog,
            "show_edit_members_dialog": self.show_edit_members_dialog,
            "search_results": [u.to_dict() for u in self.search_results],
        }


def _created_at_key(poll: Poll) -> datetime.datetime:
    created_at = poll.created_at
    if isinstance(created_at, datetime.datetime):
        if created_at.tzinfo is None:
            return created_at.replace(tzinfo=datetime.timezone.utc)
        return created_at
    return _EPOCH


def sort_polls(polls: Iterable[Poll]) -> tuple[Poll, ...]:
    """Order polls newest first; polls without a timestamp go last."""
    return tuple(sorted(polls, key=_created_at_key, reverse=True))


class GroupDetailReadModel:
    """Subscribe to a group document and republish a normalized state."""

    def __init__(
        self,
        db: Client,
        group_id: str,
        current_user_email: str | None,
        directory: UserDirectory | None = None,
    ) -> None:
        """Initialize the read model; nothing is fetched until start()."""
        self.db = db
        self.group_id = group_id
        self.current_user_email = current_user_email
        self.directory = directory if directory is not None else UserDirectory(db)
        self._lock = threading.Lock()
        # Held across a change and its delivery so publish order is update order.
        self._publish_lock = threading.RLock()
        self._state = GroupDetailState()
        self._subscribers: list[Subscriber] = []
        self._watch: Any = None

    @property
    def state(self) -> GroupDetailState:
        with self._lock:
            return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback, call it with the current state, return an unsubscriber."""
        with self._publish_lock:
            with self._lock:
                self._subscribers.append(callback)
                state = self._state
            callback(state)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _update(self, **changes: Any) -> GroupDetailState:
        with self._publish_lock:
            with self._lock:
                self._state = replace(self._state, **changes)
                state = self._state
                subscribers = list(self._subscribers)
            for callback in subscribers:
                callback(state)
        return state

    def start(self) -> None:
        """Load the user directory and begin listening to the group."""
        self.refresh_users()
        self._update(is_loading=True)
        group_ref = self.db.collection(GROUPS_COLLECTION).document(self.group_id)
        try:
            self._watch = group_ref.on_snapshot(self.handle_snapshot)
        except GoogleAPICallError as e:
            self.handle_error(e)

    def close(self) -> None:
        """Stop listening to the group."""
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None

    def handle_snapshot(
        self, doc_snapshots: list[Any], changes: Any = None, read_time: Any = None
    ) -> None:
        """Reconcile a pushed snapshot into the published state.

        A snapshot that fails to deserialize publishes the error and keeps the
        last good group and polls.
        """
        snapshot = doc_snapshots[-1] if doc_snapshots else None
        if snapshot is None or not snapshot.exists:
            self._update(is_loading=False, group=None, polls=(), error=None)
            return
        try:
            group = Group.from_snapshot(snapshot)
        except AppError as e:
            self.handle_error(e)
            return
        self._update(
            is_loading=False, group=group, polls=sort_polls(group.polls), error=None
        )

    def check_listener(self) -> bool:
        """Publish an error if the snapshot listener has stopped.

        Returns whether the listener is still running.
        """
        watch = self._watch
        if watch is None:
            return False
        if getattr(watch, "is_active", True):
            return True
        self._watch = None
        watch.unsubscribe()
        self.handle_error("the snapshot listener stopped")
        return False

    def handle_error(self, exc: BaseException | str) -> None:
        """Publish a load failure without discarding the last good data."""
        logger.error(f"Failed to load group {self.group_id}: {exc}")
        self._update(is_loading=False, error=f"Failed to load group: {exc}")

    # -- user directory ----------------------------------------------------

    def refresh_users(self) -> None:
        """Re-fetch the directory of other users used by member search."""
        try:
            users = self.directory.list_other_users(self.current_user_email)
        except GoogleAPICallError as e:
            logger.error(f"Failed to load users: {e}")
            self._update(error=f"Failed to load users: {e}")
            return
        self._update(all_users=tuple(users))

    def search_users(self, query: str) -> tuple[UserSearchResult, ...]:
        """Filter the cached directory and publish the matches."""
        results = tuple(search_users(list(self.state.all_users), query))
        self._update(search_results=results)
        return results

    # -- local toggles -----------------------------------------------------

    def show_create_poll_dialog(self) -> None:
        self._update(show_create_poll_dialog=True)

    def hide_create_poll_dialog(self) -> None:
        self._update(show_create_poll_dialog=False)

    def show_edit_members_dialog(self) -> None:
        self._update(show_edit_members_dialog=True)

    def hide_edit_members_dialog(self) -> None:
        self._update(show_edit_members_dialog=False, search_results=())
