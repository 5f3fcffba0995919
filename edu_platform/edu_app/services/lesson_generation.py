"""Bulk chapter (lesson) generation across every grade level and subject."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict

from flask import current_app

from ..extensions import db
from . import catalog_service, checkpoint_service
from .failure_ledger import record_failure
from .generation_client import GenerationClient, get_generation_client
from .retry import RetryExhausted, retry_with_backoff

JOB_TYPE = "lessons"


class _RunSuperseded(Exception):
    """The checkpoint no longer belongs to this run (stopped, unblocked or restarted)."""


def _checkpoint(run_id: str, **fields: Any) -> None:
    if not checkpoint_service.save_checkpoint(JOB_TYPE, run_id=run_id, **fields):
        raise _RunSuperseded()


def _ensure_running(run_id: str) -> None:
    if not checkpoint_service.is_running(JOB_TYPE, run_id):
        raise _RunSuperseded()


def _generate_for_subject(
    client: GenerationClient, run_id: str, subject, grade_level: str, progress: Dict, summary: Dict
) -> None:
    cfg = current_app.config
    school_year = str(date.today().year)
    timeout = float(cfg.get("BULK_LESSON_TIMEOUT_SEC", 180))

    def _call():
        chapters = client.generate_chapters(subject.name, grade_level, school_year, timeout=timeout)
        return catalog_service.insert_chapters(subject, grade_level, chapters)

    def _after_failed_attempt(_exc):
        db.session.rollback()
        # Heartbeat for the stall monitor; raises once the run is stopped.
        _checkpoint(run_id, **progress)

    try:
        rows = retry_with_backoff(
            _call,
            max_attempts=int(cfg.get("BULK_MAX_ATTEMPTS", 3)),
            backoff_seconds=float(cfg.get("BULK_LESSON_RETRY_BACKOFF_SEC", 2)),
            label=f"Chapter generation for {subject.name} ({grade_level})",
            on_error=_after_failed_attempt,
            before_retry=lambda _attempt: _checkpoint(run_id, **progress),
        )
    except RetryExhausted as exc:
        summary["failed"] += 1
        record_failure(
            "lesson",
            subject_name=subject.name,
            grade_level=grade_level,
            error_message=exc.last_error,
            retry_count=exc.attempts,
        )
        return
    summary["generated"] += len(rows)
    current_app.logger.info(
        "Generated %s chapter(s) for %s (%s)", len(rows), subject.name, grade_level
    )


def generate_all_lessons(client: GenerationClient | None = None) -> Dict[str, Any]:
    """Generate chapters for every subject that has none yet, level by level.

    Resumes from the stored checkpoint, skips subjects that already have
    chapters at a level, and records exhausted subjects in the failure ledger
    instead of stopping. Never raises; the outcome is reflected in the
    checkpoint and the returned summary.
    """
    summary: Dict[str, Any] = {"generated": 0, "skipped": 0, "failed": 0, "stopped": False}
    run_id: str | None = None
    try:
        client = client or get_generation_client()
        subjects = catalog_service.list_subjects()
        levels = catalog_service.active_lesson_levels(subjects)
        checkpoint = checkpoint_service.load_checkpoint(JOB_TYPE)
        stored_index = checkpoint.current_level_index if checkpoint else 0
        start_index = max(0, (stored_index or 0) - 1)

        run_id = checkpoint_service.begin_run(
            JOB_TYPE,
            current_level=levels[start_index] if start_index < len(levels) else "",
            current_level_index=start_index,
            total_levels=len(levels),
        )
        current_app.logger.info(
            "Lesson generation run %s started at level %s/%s", run_id, start_index + 1, len(levels)
        )

        try:
            for index in range(start_index, len(levels)):
                _ensure_running(run_id)
                grade_level = levels[index]
                try:
                    level_subjects = catalog_service.subjects_for_level(subjects, grade_level)
                    _checkpoint(
                        run_id,
                        current_level=grade_level,
                        current_level_index=index + 1,
                        total_levels=len(levels),
                        current_subject=None,
                        current_subject_index=0,
                        total_subjects=len(level_subjects),
                    )
                    for subject_index, subject in enumerate(level_subjects, start=1):
                        _ensure_running(run_id)
                        try:
                            if catalog_service.count_chapters(subject.id, grade_level) > 0:
                                summary["skipped"] += 1
                                continue
                            progress = {
                                "current_subject": subject.name,
                                "current_subject_index": subject_index,
                            }
                            _checkpoint(run_id, **progress)
                            _generate_for_subject(
                                client, run_id, subject, grade_level, progress, summary
                            )
                            _checkpoint(run_id, **progress)
                        except _RunSuperseded:
                            raise
                        except Exception as exc:
                            db.session.rollback()
                            current_app.logger.exception(
                                "Lesson generation crashed for %s (%s)", subject.name, grade_level
                            )
                            summary["failed"] += 1
                            record_failure(
                                "lesson",
                                subject_name=subject.name,
                                grade_level=grade_level,
                                error_message=str(exc) or type(exc).__name__,
                                retry_count=0,
                            )
                except _RunSuperseded:
                    raise
                except Exception:
                    db.session.rollback()
                    current_app.logger.exception("Lesson generation crashed on level %s", grade_level)
        except _RunSuperseded:
            summary["stopped"] = True
            current_app.logger.info("Lesson generation run %s stopped", run_id)
            return summary

        if checkpoint_service.finish_run(JOB_TYPE, run_id, level_count=len(levels)):
            current_app.logger.info(
                "Lesson generation complete: %s generated, %s skipped, %s failed",
                summary["generated"],
                summary["skipped"],
                summary["failed"],
            )
        else:
            summary["stopped"] = True
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Lesson generation run %s crashed", run_id)
        if run_id is not None:
            try:
                checkpoint_service.fail_run(JOB_TYPE, run_id)
            except Exception:
                current_app.logger.exception("Could not mark lesson run %s as failed", run_id)
    return summary
