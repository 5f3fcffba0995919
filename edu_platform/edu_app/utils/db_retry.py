"""Helpers that ride out SQLite lock contention on writes."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError

from ..extensions import db

T = TypeVar("T")


def run_with_lock_retry(fn: Callable[[], T], attempts: int = 5, base_delay: float = 0.3) -> T:
    """Run a write-and-commit callable, replaying it when SQLite reports a lock."""
    for attempt in range(attempts):
        try:
            return fn()
        except OperationalError as exc:
            db.session.rollback()
            if "locked" not in str(exc).lower() or attempt == attempts - 1:
                raise
            time.sleep(base_delay * (attempt + 1))
    raise RuntimeError("run_with_lock_retry called with attempts < 1")
