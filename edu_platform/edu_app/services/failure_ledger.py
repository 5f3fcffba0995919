"""Append-only ledger of generation units that exhausted their retries."""

from __future__ import annotations

from typing import List

from flask import current_app

from ..extensions import db
from ..metrics import record_failure as record_failure_metric
from ..models import FailedGeneration
from ..models.generation import utcnow
from ..utils import run_with_lock_retry
from .generation_events import publish_failure

FAILURE_TYPES = ("lesson", "quiz")


def record_failure(
    generation_type: str,
    *,
    subject_name: str,
    grade_level: str,
    error_message: str,
    retry_count: int,
    chapter_title: str | None = None,
    quiz_difficulty: str | None = None,
    quiz_number: int | None = None,
) -> FailedGeneration:
    if generation_type not in FAILURE_TYPES:
        raise ValueError(f"Unknown failure type: {generation_type!r}")

    def _write() -> FailedGeneration:
        record = FailedGeneration(
            generation_type=generation_type,
            subject_name=subject_name,
            grade_level=grade_level,
            chapter_title=chapter_title,
            quiz_difficulty=quiz_difficulty,
            quiz_number=quiz_number,
            error_message=error_message or "Unknown error",
            retry_count=retry_count,
            last_attempt_at=utcnow(),
        )
        db.session.add(record)
        db.session.commit()
        return record

    record = run_with_lock_retry(_write)
    current_app.logger.warning(
        "Recorded %s failure for %s / %s: %s",
        generation_type,
        subject_name,
        chapter_title or grade_level,
        record.error_message,
    )
    record_failure_metric(generation_type)
    publish_failure(record)
    return record


def list_failures(pending_only: bool = True, limit: int | None = None) -> List[FailedGeneration]:
    query = FailedGeneration.query
    if pending_only:
        query = query.filter(FailedGeneration.retried_successfully_at.is_(None))
    query = query.order_by(FailedGeneration.created_at.asc(), FailedGeneration.id.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_failure(failure_id: int) -> FailedGeneration | None:
    return db.session.get(FailedGeneration, failure_id)


def mark_resolved(record: FailedGeneration) -> FailedGeneration:
    def _write() -> FailedGeneration:
        record.retried_successfully_at = utcnow()
        record.last_attempt_at = record.retried_successfully_at
        db.session.commit()
        return record

    run_with_lock_retry(_write)
    publish_failure(record)
    return record


def mark_retry_failed(record: FailedGeneration, error_message: str) -> FailedGeneration:
    def _write() -> FailedGeneration:
        record.error_message = error_message or "Unknown error"
        record.retry_count = (record.retry_count or 0) + 1
        record.last_attempt_at = utcnow()
        db.session.commit()
        return record

    run_with_lock_retry(_write)
    publish_failure(record)
    return record


def delete_failure(failure_id: int) -> bool:
    record = get_failure(failure_id)
    if record is None:
        return False
    db.session.delete(record)
    db.session.commit()
    return True
