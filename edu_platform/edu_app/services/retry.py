"""Retry-with-backoff helper shared by the generation drivers."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

import requests
from sqlalchemy.exc import SQLAlchemyError

from .generation_client import GenerationError

T = TypeVar("T")
logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (GenerationError, requests.RequestException, SQLAlchemyError)


class RetryExhausted(RuntimeError):
    """All attempts for one unit of work failed."""

    def __init__(self, last_error: str, attempts: int) -> None:
        super().__init__(last_error)
        self.last_error = last_error
        self.attempts = attempts


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_attempts: int,
    backoff_seconds: float,
    initial_delay: float = 0.0,
    label: str = "generation",
    on_error: Callable[[Exception], None] | None = None,
    before_retry: Callable[[int], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn`` until it succeeds or ``max_attempts`` is reached.

    ``initial_delay`` is waited before the first attempt; failed attempts
    before the last one wait ``backoff_seconds * attempt``. ``on_error`` runs
    after each failed attempt (e.g. to roll back a session). ``before_retry``
    runs with the attempt number right before attempts 2..n; anything it
    raises propagates, which lets a caller abandon a unit mid-retry.
    """
    max_attempts = max(1, int(max_attempts))
    last_error = "Unknown error"
    for attempt in range(1, max_attempts + 1):
        if attempt == 1 and initial_delay > 0:
            sleep(initial_delay)
        try:
            return fn()
        except RETRYABLE_ERRORS as exc:
            last_error = str(exc) or type(exc).__name__
            if on_error is not None:
                on_error(exc)
            if attempt >= max_attempts:
                break
            delay = backoff_seconds * attempt
            logger.warning(
                "%s failed (attempt %s/%s): %s. Retrying in %.1fs",
                label,
                attempt,
                max_attempts,
                last_error,
                delay,
            )
            if delay > 0:
                sleep(delay)
            if before_retry is not None:
                before_retry(attempt + 1)
    logger.error("%s failed after %s attempt(s): %s", label, max_attempts, last_error)
    raise RetryExhausted(last_error, max_attempts)
