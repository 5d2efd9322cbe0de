"""Utility functions for building services inside a request."""

from firebase_admin import firestore
from flask import current_app

from .services import GroupRepository, PollVotingEngine, UserDirectory


def _retry_settings():
    return {
        "max_attempts": current_app.config["TRANSACTION_MAX_ATTEMPTS"],
        "backoff_seconds": current_app.config["TRANSACTION_BACKOFF_SECONDS"],
    }


def get_group_repository():
    """Return a GroupRepository bound to the app's Firestore client."""
    return GroupRepository(firestore.client(), **_retry_settings())


def get_voting_engine():
    """Return a PollVotingEngine bound to the app's Firestore client."""
    return PollVotingEngine(firestore.client(), **_retry_settings())


def get_user_directory():
    """Return a UserDirectory bound to the app's Firestore client."""
    return UserDirectory(firestore.client())


def get_search_directory():
    """Return the app-wide UserDirectory used by member search.

    Its user list is cached for USER_SEARCH_CACHE_SECONDS so typing a query
    does not stream the whole users collection on each keystroke.
    """
    directory = current_app.extensions.get("lunchpoll_user_search")
    if directory is None:
        directory = UserDirectory(
            firestore.client(),
            cache_seconds=current_app.config["USER_SEARCH_CACHE_SECONDS"],
        )
        current_app.extensions["lunchpoll_user_search"] = directory
    return directory
