"""Utility helpers (database write retries, etc.)."""

from .db_retry import run_with_lock_retry

__all__ = ["run_with_lock_retry"]
