"""Bounded retry around Firestore optimistic transactions."""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from firebase_admin import firestore
from google.api_core.exceptions import Aborted

from lunchpoll.constants import TRANSACTION_BACKOFF_SECONDS, TRANSACTION_MAX_ATTEMPTS
from lunchpoll.errors import TransactionAborted

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.transaction import Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_conflict(exc: BaseException) -> bool:
    """Tell whether an exception raised by a transaction is a commit conflict."""
    if isinstance(exc, Aborted):
        return True
    # The client wraps the last Aborted in a ValueError once its own attempts
    # are exhausted.
    return isinstance(exc, ValueError) and isinstance(exc.__cause__, Aborted)


def run_transaction(
    db: Client,
    body: Callable[..., T],
    *args: Any,
    max_attempts: int = TRANSACTION_MAX_ATTEMPTS,
    backoff_seconds: float = TRANSACTION_BACKOFF_SECONDS,
    **kwargs: Any,
) -> T:
    """Run ``body(transaction, *args, **kwargs)`` in a transaction, retrying conflicts.

    Each attempt opens a fresh single-attempt transaction so every retry re-reads
    its documents. Between attempts the caller sleeps for a random delay drawn
    from an exponentially growing window. Errors raised by ``body`` itself are
    not retried.
    """
    transactional_body = firestore.transactional(body)
    last_exc: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        transaction: Transaction = db.transaction(max_attempts=1)
        try:
            return transactional_body(transaction, *args, **kwargs)
        except (Aborted, ValueError) as exc:
            if not _is_conflict(exc):
                raise
            last_exc = exc
        logger.warning(
            f"Transaction {getattr(body, '__name__', body)} conflicted "
            f"(attempt {attempt}/{max_attempts})."
        )
        if attempt < max_attempts:
            time.sleep(random.uniform(0, backoff_seconds * 2 ** (attempt - 1)))  # nosec B311

    raise TransactionAborted(
        f"The operation conflicted with another update {max_attempts} times."
    ) from last_exc
