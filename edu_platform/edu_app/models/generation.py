"""Persistent state for the bulk generation pipelines."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db

JOB_TYPES = ("lessons", "quizzes")
LEVEL_DONE = "done"
LEVEL_ERROR = "error"
TERMINAL_LEVELS = (LEVEL_DONE, LEVEL_ERROR)


def utcnow():
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    value = ensure_aware(value)
    return value.isoformat() if value else None


class BulkGenerationProgress(db.Model):
    """Checkpoint of one generation pipeline; one row per job type."""

    __tablename__ = "bulk_generation_progress"

    id = db.Column(db.Integer, primary_key=True)
    generation_type = db.Column(db.String(16), nullable=False, unique=True)
    current_level = db.Column(db.String(32), nullable=False, default="")
    current_level_index = db.Column(db.Integer, nullable=False, default=0)
    total_levels = db.Column(db.Integer, nullable=False, default=0)
    current_subject = db.Column(db.String(255))
    current_subject_index = db.Column(db.Integer)
    total_subjects = db.Column(db.Integer)
    current_lesson = db.Column(db.String(255))
    current_lesson_index = db.Column(db.Integer)
    total_lessons = db.Column(db.Integer)
    current_quiz_type = db.Column(db.String(32))
    current_quiz_number = db.Column(db.Integer)
    total_quizzes = db.Column(db.Integer)
    is_running = db.Column(db.Boolean, nullable=False, default=False)
    is_paused = db.Column(db.Boolean, nullable=False, default=False)
    run_id = db.Column(db.String(32))
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_terminal(self) -> bool:
        return self.current_level in TERMINAL_LEVELS

    @property
    def has_levels_remaining(self) -> bool:
        return (self.current_level_index or 0) < (self.total_levels or 0)

    def idle_seconds(self, now: datetime | None = None) -> float:
        now = ensure_aware(now) or utcnow()
        updated = ensure_aware(self.updated_at) or now
        return (now - updated).total_seconds()

    def serialize(self) -> dict:
        return {
            "generation_type": self.generation_type,
            "current_level": self.current_level,
            "current_level_index": self.current_level_index,
            "total_levels": self.total_levels,
            "current_subject": self.current_subject,
            "current_subject_index": self.current_subject_index,
            "total_subjects": self.total_subjects,
            "current_lesson": self.current_lesson,
            "current_lesson_index": self.current_lesson_index,
            "total_lessons": self.total_lessons,
            "current_quiz_type": self.current_quiz_type,
            "current_quiz_number": self.current_quiz_number,
            "total_quizzes": self.total_quizzes,
            "is_running": bool(self.is_running),
            "is_paused": bool(self.is_paused),
            "run_id": self.run_id,
            "updated_at": _isoformat(self.updated_at),
        }


class FailedGeneration(db.Model):
    """A unit of work that exhausted its retries."""

    __tablename__ = "failed_generations"

    id = db.Column(db.Integer, primary_key=True)
    generation_type = db.Column(db.String(16), nullable=False)  # lesson / quiz
    subject_name = db.Column(db.String(255), nullable=False)
    grade_level = db.Column(db.String(16), nullable=False)
    chapter_title = db.Column(db.String(255))
    quiz_difficulty = db.Column(db.String(32))
    quiz_number = db.Column(db.Integer)
    error_message = db.Column(db.Text, nullable=False, default="")
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    last_attempt_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    retried_successfully_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_pending(self) -> bool:
        return self.retried_successfully_at is None

    def serialize(self) -> dict:
        return {
            "id": self.id,
            "generation_type": self.generation_type,
            "subject_name": self.subject_name,
            "grade_level": self.grade_level,
            "chapter_title": self.chapter_title,
            "quiz_difficulty": self.quiz_difficulty,
            "quiz_number": self.quiz_number,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "last_attempt_at": _isoformat(self.last_attempt_at),
            "retried_successfully_at": _isoformat(self.retried_successfully_at),
            "created_at": _isoformat(self.created_at),
        }
