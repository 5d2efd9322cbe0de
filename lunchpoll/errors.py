"""Custom exception classes for the application."""

from __future__ import annotations


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when input fails validation before any store call."""

    def __init__(self, message: str = "Validation failed.") -> None:
        """Initialize the error."""
        super().__init__(message, 400)


class Unauthenticated(AppError):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self, message: str = "User not authenticated.") -> None:
        """Initialize the error."""
        super().__init__(message, 401)


class AccessDenied(AppError):
    """Raised when the signed-in user may not perform an operation."""

    def __init__(self, message: str = "Access denied.") -> None:
        """Initialize the error."""
        super().__init__(message, 403)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found.") -> None:
        """Initialize the error."""
        super().__init__(message, 404)


class GroupNotFound(NotFoundError):
    """Raised when a group document does not exist."""

    def __init__(self, group_id: str) -> None:
        """Initialize the error."""
        super().__init__(f"Group {group_id} not found.")
        self.group_id = group_id


class PollNotFound(NotFoundError):
    """Raised when a poll cannot be located at all."""

    def __init__(self, poll_id: str) -> None:
        """Initialize the error."""
        super().__init__(f"Poll {poll_id} not found.")
        self.poll_id = poll_id


class PollNotFoundInGroup(NotFoundError):
    """Raised when a group's embedded polls do not include the poll."""

    def __init__(self, poll_id: str, group_id: str) -> None:
        """Initialize the error."""
        super().__init__(f"Poll {poll_id} not found in group {group_id}.")
        self.poll_id = poll_id
        self.group_id = group_id


class PollEnded(AppError):
    """Raised when voting on a poll whose terminal flag is set."""

    def __init__(self, poll_id: str) -> None:
        """Initialize the error."""
        super().__init__(f"Poll {poll_id} has ended.", 409)
        self.poll_id = poll_id


class FailedToDeserialize(AppError):
    """Raised when a stored document does not have the expected shape."""

    def __init__(self, message: str = "Failed to deserialize document.") -> None:
        """Initialize the error."""
        super().__init__(message, 500)


class TransactionAborted(AppError):
    """Raised when an optimistic transaction keeps conflicting."""

    def __init__(
        self, message: str = "The operation conflicted with another update."
    ) -> None:
        """Initialize the error."""
        super().__init__(message, 409)


class PartialCascadeFailure(AppError):
    """Raised when a group is gone but some of its polls could not be deleted."""

    def __init__(self, group_id: str, orphaned_poll_ids: list[str]) -> None:
        """Initialize the error."""
        super().__init__(
            f"Group {group_id} was deleted but {len(orphaned_poll_ids)} poll(s) "
            "could not be removed.",
            500,
        )
        self.group_id = group_id
        self.orphaned_poll_ids = orphaned_poll_ids
