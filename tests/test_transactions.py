"""Tests for the transaction retry helper."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from google.api_core.exceptions import Aborted

from lunchpoll.core.transactions import run_transaction
from lunchpoll.errors import GroupNotFound, TransactionAborted
from tests.mock_utils import make_firestore_module


def wrapped_conflict():
    """A ValueError the way the client raises it after its own retries."""
    try:
        raise Aborted("contention")
    except Aborted as exc:
        try:
            raise ValueError("Failed to commit transaction") from exc
        except ValueError as wrapped:
            return wrapped


class RunTransactionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = MagicMock()
        patchers = [
            patch(
                "lunchpoll.core.transactions.firestore",
                new=make_firestore_module(self.db),
            ),
            patch("lunchpoll.core.transactions.time.sleep"),
        ]
        self.mocks = [p.start() for p in patchers]
        for p in patchers:
            self.addCleanup(p.stop)
        self.sleep = self.mocks[1]

    def test_returns_body_result(self) -> None:
        body = MagicMock(return_value="done")
        body.__name__ = "body"

        result = run_transaction(self.db, body, "a", key="b")

        self.assertEqual(result, "done")
        transaction = self.db.transaction.return_value
        body.assert_called_once_with(transaction, "a", key="b")
        self.db.transaction.assert_called_once_with(max_attempts=1)
        self.sleep.assert_not_called()

    def test_retries_conflicts_with_backoff(self) -> None:
        body = MagicMock(side_effect=[Aborted("busy"), wrapped_conflict(), "ok"])
        body.__name__ = "body"

        result = run_transaction(self.db, body, max_attempts=5, backoff_seconds=0.1)

        self.assertEqual(result, "ok")
        self.assertEqual(body.call_count, 3)
        self.assertEqual(self.db.transaction.call_count, 3)
        self.assertEqual(self.sleep.call_count, 2)
        first_delay = self.sleep.call_args_list[0][0][0]
        second_delay = self.sleep.call_args_list[1][0][0]
        self.assertTrue(0 <= first_delay <= 0.1)
        self.assertTrue(0 <= second_delay <= 0.2)

    def test_gives_up_after_max_attempts(self) -> None:
        body = MagicMock(side_effect=Aborted("busy"))
        body.__name__ = "body"

        with self.assertRaises(TransactionAborted) as cm:
            run_transaction(self.db, body, max_attempts=3, backoff_seconds=0)

        self.assertEqual(body.call_count, 3)
        self.assertIsInstance(cm.exception.__cause__, Aborted)
        self.assertEqual(cm.exception.status_code, 409)
        self.assertEqual(self.sleep.call_count, 2)

    def test_body_errors_are_not_retried(self) -> None:
        body = MagicMock(side_effect=GroupNotFound("g1"))
        body.__name__ = "body"

        with self.assertRaises(GroupNotFound):
            run_transaction(self.db, body)
        self.assertEqual(body.call_count, 1)

    def test_plain_value_errors_are_not_retried(self) -> None:
        body = MagicMock(side_effect=ValueError("bad document"))
        body.__name__ = "body"

        with self.assertRaises(ValueError):
            run_transaction(self.db, body)
        self.assertEqual(body.call_count, 1)


if __name__ == "__main__":
    unittest.main()
