"""Read-only lookups against the users collection."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPICallError

from lunchpoll.constants import USER_DISPLAY_NAME, USER_EMAIL, USERS_COLLECTION

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSearchResult:
    """A user as offered by member search."""

    email: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly form."""
        return {"email": self.email, "name": self.name}


def search_users(users: list[UserSearchResult], query: str) -> list[UserSearchResult]:
    """Filter users by a case-insensitive substring of email or name."""
    if not query or not query.strip():
        return []
    needle = query.strip().lower()
    return [u for u in users if needle in u.email.lower() or needle in u.name.lower()]


class UserDirectory:
    """Service class for looking users up by email."""

    def __init__(self, db: Client | None = None, cache_seconds: float = 0) -> None:
        """Initialize the directory with an injected Firestore client.

        With ``cache_seconds`` above zero the full user list is reused for that
        long instead of being streamed on every call.
        """
        self.db = db if db is not None else firestore.client()
        self.cache_seconds = cache_seconds
        self._cache_lock = threading.Lock()
        self._cached_users: list[UserSearchResult] | None = None
        self._cached_at = 0.0

    def get_uid_for_email(self, email: str) -> str | None:
        """Return the document id of the user with this email, if any."""
        if not email:
            return None
        query = (
            self.db.collection(USERS_COLLECTION)
            .where(filter=firestore.FieldFilter(USER_EMAIL, "==", email))
            .limit(1)
        )
        try:
            docs = list(query.stream())
        except GoogleAPICallError as e:
            logger.error(f"Error fetching UID for email {email}: {e}")
            return None
        if not docs:
            logger.warning(f"No user found with email: {email}")
            return None
        return docs[0].id

    def list_users(self) -> list[UserSearchResult]:
        """Fetch every user that has an email.

        A missing display name falls back to the email.
        """
        if self.cache_seconds > 0:
            with self._cache_lock:
                age = time.monotonic() - self._cached_at
                if self._cached_users is not None and age < self.cache_seconds:
                    return list(self._cached_users)

        users = []
        for doc in self.db.collection(USERS_COLLECTION).stream():
            data = doc.to_dict() or {}
            email = data.get(USER_EMAIL)
            if not email:
                continue
            users.append(UserSearchResult(email, data.get(USER_DISPLAY_NAME) or email))

        if self.cache_seconds > 0:
            with self._cache_lock:
                self._cached_users = list(users)
                self._cached_at = time.monotonic()
        return users

    def invalidate(self) -> None:
        """Drop the cached user list."""
        with self._cache_lock:
            self._cached_users = None

    def list_other_users(self, current_email: str | None) -> list[UserSearchResult]:
        """Fetch every user except the current one."""
        return [u for u in self.list_users() if u.email != current_email]
