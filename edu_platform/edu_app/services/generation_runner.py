"""Launch generation drivers in background threads and control them."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict

from flask import current_app

from . import checkpoint_service
from .lesson_generation import generate_all_lessons
from .quiz_generation import generate_all_quizzes

DRIVERS: Dict[str, Callable[..., Dict[str, Any]]] = {
    "lessons": generate_all_lessons,
    "quizzes": generate_all_quizzes,
}

_JOB_THREADS: Dict[str, threading.Thread] = {}
_JOB_REGISTRY_LOCK = threading.Lock()


class JobAlreadyRunning(RuntimeError):
    def __init__(self, job_type: str) -> None:
        super().__init__(f"{job_type} generation is already running")
        self.job_type = job_type


def _run_sync() -> bool:
    cfg = current_app.config
    return bool(cfg.get("TESTING") or cfg.get("BULK_GENERATION_SYNC"))


def launch(job_type: str, sync: bool | None = None) -> Dict[str, Any] | None:
    """Run the driver for ``job_type`` without waiting for it.

    Returns the driver summary when running synchronously (``sync=True``, tests
    or ``BULK_GENERATION_SYNC``), ``None`` when a background thread was started
    or one is still alive.
    """
    checkpoint_service.validate_job_type(job_type)
    driver = DRIVERS[job_type]
    if sync is None:
        sync = _run_sync()
    if sync:
        return driver()

    app = current_app._get_current_object()

    def _runner():
        try:
            with app.app_context():
                driver()
        finally:
            with _JOB_REGISTRY_LOCK:
                if _JOB_THREADS.get(job_type) is threading.current_thread():
                    _JOB_THREADS.pop(job_type, None)

    with _JOB_REGISTRY_LOCK:
        existing = _JOB_THREADS.get(job_type)
        if existing is not None and existing.is_alive():
            app.logger.info("%s generation thread still alive, not launching another", job_type)
            return None
        thread = threading.Thread(target=_runner, name=f"bulk-{job_type}", daemon=True)
        _JOB_THREADS[job_type] = thread
    thread.start()
    app.logger.info("Launched %s generation in background", job_type)
    return None


def start(job_type: str, sync: bool | None = None) -> Dict[str, Any] | None:
    """User-initiated start; refuses when the checkpoint says a run is live."""
    checkpoint_service.validate_job_type(job_type)
    if checkpoint_service.is_running(job_type):
        raise JobAlreadyRunning(job_type)
    return launch(job_type, sync=sync)


def stop(job_type: str):
    checkpoint = checkpoint_service.stop(job_type)
    current_app.logger.info("Stop requested for %s generation", job_type)
    return checkpoint
