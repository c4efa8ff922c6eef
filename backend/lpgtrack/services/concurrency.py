# Overview: Concurrency helpers for cylinder writes; compare-and-swap conflicts and one-shot retry.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import OperationalError

from ..extensions import db
from ..validation import ConflictError


class StaleStateConflict(ConflictError):
    """
    The caller's snapshot of a cylinder's status no longer matches storage.

    Raised when the conditional status UPDATE matches zero rows, or when a
    caller-pinned expected status differs from the stored one. The caller
    should re-fetch and decide again.
    """

    def __init__(self, identifier: str, expected_status: str, actual_status: str | None = None):
        self.identifier = identifier
        self.expected_status = expected_status
        self.actual_status = actual_status
        detail = f" (now '{actual_status}')" if actual_status else ""
        super().__init__(
            f"Cylinder {identifier} is no longer '{expected_status}'{detail}; refresh and try again"
        )


def lock_for_update(query):
    """
    Apply row-level locking for status writes.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The conditional UPDATE in cylinder_service is what protects SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 2, retry_on=(StaleStateConflict, OperationalError)):
    """
    Execute a DB unit of work, retrying on concurrency-related failures.

    Default is one retry: re-read the cylinder and re-validate once, then
    surface the conflict. The session is rolled back before each retry.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %d/%d): %s",
                attempt + 1, attempts, exc,
            )
