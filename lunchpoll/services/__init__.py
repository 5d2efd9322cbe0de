"""Service layer for groups, polls and the group detail read model."""

from .group_repository import GroupRepository
from .read_model import GroupDetailReadModel, GroupDetailState
from .user_directory import UserDirectory, UserSearchResult
from .voting import PollVotingEngine, apply_vote

__all__ = [
    "GroupDetailReadModel",
    "GroupDetailState",
    "GroupRepository",
    "PollVotingEngine",
    "UserDirectory",
    "UserSearchResult",
    "apply_vote",
]
