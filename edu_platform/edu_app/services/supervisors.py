"""Background supervisors for the bulk generation checkpoints.

Two periodic tasks keep long jobs moving without anyone watching the admin
screen:

* the stall monitor clears ``is_running`` on a checkpoint that stopped
  advancing, so a driver that died mid-run does not block the job forever;
* the auto-restart supervisor relaunches any job that is idle, not finished,
  and still has levels left to process.

They talk to the drivers only through the checkpoint table, so they work the
same whether they run inside the web process or in ``flask generation supervise``.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, List

from flask import Flask, current_app
from sqlalchemy import update

from ..extensions import db
from ..metrics import record_supervisor_action
from ..models import BulkGenerationProgress
from ..models.generation import ensure_aware, utcnow
from ..utils import run_with_lock_retry
from . import checkpoint_service, generation_runner
from .generation_events import publish_checkpoint


def unblock_stalled_jobs(now: datetime | None = None) -> List[str]:
    """Clear the running flag of checkpoints idle longer than the stall timeout."""
    now = ensure_aware(now) or utcnow()
    threshold = float(current_app.config.get("BULK_STALL_TIMEOUT_SEC", 180))
    unblocked: List[str] = []
    for checkpoint in checkpoint_service.list_checkpoints():
        if not checkpoint.is_running or checkpoint.idle_seconds(now) <= threshold:
            continue
        job_type = checkpoint.generation_type
        run_id = checkpoint.run_id
        idle = checkpoint.idle_seconds(now)

        def _write() -> int:
            result = db.session.execute(
                update(BulkGenerationProgress)
                .where(
                    BulkGenerationProgress.id == checkpoint.id,
                    BulkGenerationProgress.is_running.is_(True),
                    BulkGenerationProgress.run_id.is_(None)
                    if run_id is None
                    else BulkGenerationProgress.run_id == run_id,
                )
                .values(is_running=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            return result.rowcount

        if run_with_lock_retry(_write) != 1:
            continue
        current_app.logger.warning(
            "Unblocked stalled %s generation (no progress for %.0fs)",
            job_type,
            idle,
        )
        record_supervisor_action("unblock", job_type)
        refreshed = checkpoint_service.load_checkpoint(job_type)
        if refreshed is not None:
            publish_checkpoint(refreshed)
        unblocked.append(job_type)
    return unblocked


def auto_restart_idle_jobs(
    now: datetime | None = None, launcher: Callable[[str], object] | None = None
) -> List[str]:
    """Relaunch unfinished, non-running jobs that have been idle long enough."""
    launcher = launcher or generation_runner.launch
    now = ensure_aware(now) or utcnow()
    threshold = float(current_app.config.get("BULK_AUTO_RESTART_IDLE_SEC", 300))
    candidates = [
        checkpoint
        for checkpoint in checkpoint_service.list_checkpoints()
        if not checkpoint.is_running
        and not checkpoint.is_terminal
        and checkpoint.has_levels_remaining
        and checkpoint.idle_seconds(now) > threshold
    ]
    restarted: List[str] = []
    for checkpoint in candidates:
        job_type = checkpoint.generation_type
        current_app.logger.info(
            "Auto-restarting %s generation at level %s/%s",
            job_type,
            checkpoint.current_level_index,
            checkpoint.total_levels,
        )
        try:
            launcher(job_type)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Auto-restart of %s generation failed", job_type)
            continue
        record_supervisor_action("restart", job_type)
        restarted.append(job_type)
    return restarted


class SupervisorThread(threading.Thread):
    """Run ``task`` every ``interval`` seconds inside an app context until stopped."""

    def __init__(self, app: Flask, task: Callable[[], object], interval: float, name: str) -> None:
        super().__init__(name=name, daemon=True)
        self.app = app
        self.task = task
        self.interval = interval
        self.stop_event = threading.Event()

    def run_once(self) -> None:
        with self.app.app_context():
            try:
                self.task()
            except Exception:
                db.session.rollback()
                self.app.logger.exception("Supervisor %s tick failed", self.name)
            finally:
                db.session.remove()

    def run(self) -> None:
        while not self.stop_event.wait(self.interval):
            self.run_once()

    def stop(self) -> None:
        self.stop_event.set()


def build_supervisors(app: Flask) -> List[SupervisorThread]:
    cfg = app.config
    return [
        SupervisorThread(
            app,
            unblock_stalled_jobs,
            float(cfg.get("BULK_STALL_CHECK_INTERVAL_SEC", 30)),
            name="generation-stall-monitor",
        ),
        SupervisorThread(
            app,
            auto_restart_idle_jobs,
            float(cfg.get("BULK_AUTO_RESTART_INTERVAL_SEC", 120)),
            name="generation-auto-restart",
        ),
    ]


def start_supervisors(app: Flask) -> List[SupervisorThread]:
    """Start both supervisors for this app unless disabled or under test."""
    if app.config.get("TESTING") or not app.config.get("BULK_SUPERVISORS_ENABLED", True):
        return []
    existing = app.extensions.get("generation_supervisors")
    if existing:
        return existing
    threads = build_supervisors(app)
    for thread in threads:
        thread.start()
    app.extensions["generation_supervisors"] = threads
    app.logger.info("Generation supervisors started")
    return threads


def stop_supervisors(app: Flask) -> None:
    for thread in app.extensions.pop("generation_supervisors", []):
        thread.stop()
