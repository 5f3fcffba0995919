"""Durable checkpoint store for the bulk generation pipelines.

There is exactly one checkpoint row per job type. Every write stamps
``updated_at``; the stall monitor relies on it as its only liveness signal.

Writes made by a driver carry the ``run_id`` handed out by :func:`begin_run`.
Such writes are applied only while that run is still current and the row is
still flagged as running, so a driver that was unblocked by the stall monitor
(or stopped by an admin) cannot overwrite the checkpoint with stale progress
when its in-flight request finally returns.
"""

from __future__ import annotations

from typing import Any, Dict
from uuid import uuid4

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import BulkGenerationProgress
from ..models.generation import JOB_TYPES, LEVEL_DONE, LEVEL_ERROR, utcnow
from ..utils import run_with_lock_retry
from . import catalog_service
from .generation_events import publish_checkpoint

WRITABLE_FIELDS = frozenset(
    {
        "current_level",
        "current_level_index",
        "total_levels",
        "current_subject",
        "current_subject_index",
        "total_subjects",
        "current_lesson",
        "current_lesson_index",
        "total_lessons",
        "current_quiz_type",
        "current_quiz_number",
        "total_quizzes",
        "is_running",
        "is_paused",
    }
)
POSITION_FIELDS = {
    "current_subject": None,
    "current_subject_index": None,
    "total_subjects": None,
    "current_lesson": None,
    "current_lesson_index": None,
    "total_lessons": None,
    "current_quiz_type": None,
    "current_quiz_number": None,
    "total_quizzes": None,
}


def validate_job_type(job_type: str) -> str:
    if job_type not in JOB_TYPES:
        raise ValueError(f"Unknown generation type: {job_type!r}")
    return job_type


def _check_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown checkpoint fields: {', '.join(sorted(unknown))}")


def load_checkpoint(job_type: str) -> BulkGenerationProgress | None:
    validate_job_type(job_type)
    return (
        BulkGenerationProgress.query.filter_by(generation_type=job_type)
        .populate_existing()
        .first()
    )


def list_checkpoints() -> list[BulkGenerationProgress]:
    return BulkGenerationProgress.query.populate_existing().order_by(BulkGenerationProgress.id).all()


def is_running(job_type: str, run_id: str | None = None) -> bool:
    """Read the persisted running flag; with ``run_id`` the run must also be current."""
    validate_job_type(job_type)
    row = (
        db.session.query(BulkGenerationProgress.is_running, BulkGenerationProgress.run_id)
        .filter(BulkGenerationProgress.generation_type == job_type)
        .first()
    )
    if row is None or not row.is_running:
        return False
    return run_id is None or row.run_id == run_id


def _upsert(job_type: str, values: Dict[str, Any]) -> BulkGenerationProgress:
    def _write() -> BulkGenerationProgress:
        checkpoint = load_checkpoint(job_type)
        if checkpoint is None:
            checkpoint = BulkGenerationProgress(generation_type=job_type)
            db.session.add(checkpoint)
        for key, value in values.items():
            setattr(checkpoint, key, value)
        checkpoint.updated_at = utcnow()
        db.session.commit()
        return checkpoint

    checkpoint = run_with_lock_retry(_write)
    publish_checkpoint(checkpoint)
    return checkpoint


def save_checkpoint(job_type: str, *, run_id: str | None = None, **fields: Any) -> bool:
    """Upsert checkpoint fields. Returns False when a run-scoped write was discarded."""
    validate_job_type(job_type)
    _check_fields(fields)
    if run_id is None:
        _upsert(job_type, fields)
        return True

    def _conditional_write() -> int:
        result = db.session.execute(
            update(BulkGenerationProgress)
            .where(
                BulkGenerationProgress.generation_type == job_type,
                BulkGenerationProgress.run_id == run_id,
                BulkGenerationProgress.is_running.is_(True),
            )
            .values(**fields, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount

    if run_with_lock_retry(_conditional_write) != 1:
        current_app.logger.info(
            "Discarded checkpoint write for %s run %s (run superseded or stopped)", job_type, run_id
        )
        return False
    checkpoint = load_checkpoint(job_type)
    if checkpoint is not None:
        publish_checkpoint(checkpoint)
    return True


def begin_run(job_type: str, **fields: Any) -> str:
    """Claim the checkpoint for a new driver run and return its run id."""
    validate_job_type(job_type)
    _check_fields(fields)
    run_id = uuid4().hex
    values = {**POSITION_FIELDS, **fields, "is_running": True, "is_paused": False, "run_id": run_id}
    _upsert(job_type, values)
    return run_id


def finish_run(job_type: str, run_id: str, *, level_count: int) -> bool:
    return save_checkpoint(
        job_type,
        run_id=run_id,
        current_level=LEVEL_DONE,
        current_level_index=level_count,
        total_levels=level_count,
        is_running=False,
        is_paused=False,
    )


def fail_run(job_type: str, run_id: str) -> bool:
    return save_checkpoint(
        job_type,
        run_id=run_id,
        current_level=LEVEL_ERROR,
        current_level_index=0,
        total_levels=0,
        is_running=False,
        is_paused=False,
    )


def stop(job_type: str) -> BulkGenerationProgress:
    """Cooperative stop: the driver notices the cleared flag before its next unit."""
    validate_job_type(job_type)
    return _upsert(job_type, {"is_running": False, "is_paused": False})


def reset(job_type: str) -> BulkGenerationProgress:
    validate_job_type(job_type)
    values = {
        **POSITION_FIELDS,
        "current_level": "",
        "current_level_index": 0,
        "total_levels": 0,
        "is_running": False,
        "is_paused": False,
        "run_id": None,
    }
    return _upsert(job_type, values)


def _active_level_count(job_type: str) -> int:
    if job_type == "lessons":
        return len(catalog_service.active_lesson_levels(catalog_service.list_subjects()))
    return len(catalog_service.active_quiz_levels(catalog_service.list_chapters()))


def describe_progress(job_type: str) -> dict:
    """Checkpoint fields plus values derived for progress display."""
    checkpoint = load_checkpoint(job_type)
    active_levels = _active_level_count(job_type)
    if checkpoint is None:
        payload = {
            "generation_type": job_type,
            "current_level": "",
            "current_level_index": 0,
            "total_levels": 0,
            "is_running": False,
            "is_paused": False,
            "updated_at": None,
        }
        is_terminal = False
        is_stale = False
    else:
        payload = checkpoint.serialize()
        is_terminal = checkpoint.is_terminal
        stall_timeout = current_app.config.get("BULK_STALL_TIMEOUT_SEC", 180)
        is_stale = bool(checkpoint.is_running) and checkpoint.idle_seconds() > stall_timeout
    total_levels = active_levels or payload["total_levels"] or 0
    level_index = payload["current_level_index"] or 0
    if payload["current_level"] == LEVEL_DONE:
        percent = 100
    elif total_levels:
        percent = min(100, int(level_index / total_levels * 100))
    else:
        percent = 0
    payload.update(
        {
            "active_levels": active_levels,
            "display_total_levels": total_levels,
            "progress_percent": percent,
            "is_terminal": is_terminal,
            "is_stale": is_stale,
        }
    )
    return payload
