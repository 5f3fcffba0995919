"""Bulk quiz generation: grade level -> chapter -> difficulty tier -> slot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from flask import current_app

from ..extensions import db
from ..models import Chapter, Subject
from . import catalog_service, checkpoint_service
from .failure_ledger import record_failure
from .generation_client import GenerationClient, get_generation_client
from .retry import RetryExhausted, retry_with_backoff

JOB_TYPE = "quizzes"


@dataclass(frozen=True)
class DifficultyTier:
    key: str
    label: str
    score: int
    points: int


TIERS = (
    DifficultyTier("easy", "Facile", 1, 50),
    DifficultyTier("medium", "Moyen", 3, 100),
    DifficultyTier("hard", "Difficile", 5, 150),
)


def tier_for(value: str | None) -> DifficultyTier | None:
    """Look a tier up by key (``easy``) or by display label (``Facile``)."""
    if not value:
        return None
    needle = value.strip().lower()
    for tier in TIERS:
        if needle in (tier.key, tier.label.lower()):
            return tier
    return None


def slots_per_tier() -> int:
    return int(current_app.config.get("BULK_QUIZ_SLOTS_PER_TIER", 5))


def quiz_title(generated_title: str | None, chapter: Chapter, tier: DifficultyTier, slot: int) -> str:
    return f"{generated_title or chapter.title} - {tier.label} {slot}"


class _RunSuperseded(Exception):
    """The checkpoint no longer belongs to this run."""


def _checkpoint(run_id: str, **fields: Any) -> None:
    if not checkpoint_service.save_checkpoint(JOB_TYPE, run_id=run_id, **fields):
        raise _RunSuperseded()


def _ensure_running(run_id: str) -> None:
    if not checkpoint_service.is_running(JOB_TYPE, run_id):
        raise _RunSuperseded()


def generate_quiz_slot(
    client: GenerationClient,
    *,
    subject: Subject,
    chapter: Chapter,
    grade_level: str,
    tier: DifficultyTier,
    slot: int,
    timeout: float,
):
    """One generation call for one slot, inserted on success. Raises on failure."""
    data = client.generate_quiz(
        subject.name,
        grade_level,
        chapter.title,
        chapter.title,
        int(current_app.config.get("BULK_QUIZ_QUESTIONS", 10)),
        tier.key,
        timeout=timeout,
    )
    return catalog_service.insert_quiz(
        chapter=chapter,
        subject=subject,
        title=quiz_title(data.get("title"), chapter, tier, slot),
        difficulty_score=tier.score,
        points=tier.points,
        grade_level=grade_level,
        questions=data["questions"],
    )


def _generate_slot_with_retry(
    client, run_id, subject, chapter, grade_level, tier, slot, progress, summary
) -> None:
    cfg = current_app.config
    timeout = float(cfg.get("BULK_QUIZ_TIMEOUT_SEC", 90))

    def _after_failed_attempt(_exc):
        db.session.rollback()
        # Heartbeat for the stall monitor; raises once the run is stopped.
        _checkpoint(run_id, **progress)

    try:
        retry_with_backoff(
            lambda: generate_quiz_slot(
                client,
                subject=subject,
                chapter=chapter,
                grade_level=grade_level,
                tier=tier,
                slot=slot,
                timeout=timeout,
            ),
            max_attempts=int(cfg.get("BULK_MAX_ATTEMPTS", 3)),
            backoff_seconds=float(cfg.get("BULK_QUIZ_RETRY_BACKOFF_SEC", 5)),
            initial_delay=float(cfg.get("BULK_QUIZ_PACING_SEC", 2.5)),
            label=f"Quiz {chapter.title} - {tier.label} {slot}",
            on_error=_after_failed_attempt,
            before_retry=lambda _attempt: _checkpoint(run_id, **progress),
        )
    except RetryExhausted as exc:
        summary["failed"] += 1
        record_failure(
            "quiz",
            subject_name=subject.name,
            grade_level=grade_level,
            chapter_title=chapter.title,
            quiz_difficulty=tier.label,
            quiz_number=slot,
            error_message=exc.last_error,
            retry_count=exc.attempts,
        )
        return
    summary["generated"] += 1


def _generate_for_chapter(client, run_id, chapter, subject, grade_level, position, summary) -> None:
    slots = slots_per_tier()
    for tier_index, tier in enumerate(TIERS):
        try:
            existing = catalog_service.count_quizzes(chapter.id, tier.score)
            if existing >= slots:
                summary["skipped"] += 1
                continue
            for slot in range(existing + 1, slots + 1):
                _ensure_running(run_id)
                try:
                    if catalog_service.count_quizzes(chapter.id, tier.score) >= slot:
                        continue
                    progress = {
                        **position,
                        "current_quiz_type": tier.label,
                        "current_quiz_number": tier_index * slots + slot,
                        "total_quizzes": slots * len(TIERS),
                    }
                    _checkpoint(run_id, **progress)
                    _generate_slot_with_retry(
                        client,
                        run_id,
                        subject,
                        chapter,
                        grade_level,
                        tier,
                        slot,
                        progress,
                        summary,
                    )
                    # Refresh updated_at even after a failed slot.
                    _checkpoint(run_id, **progress)
                except _RunSuperseded:
                    raise
                except Exception as exc:
                    db.session.rollback()
                    current_app.logger.exception(
                        "Quiz slot %s %s crashed for %s", tier.label, slot, chapter.title
                    )
                    summary["failed"] += 1
                    record_failure(
                        "quiz",
                        subject_name=subject.name,
                        grade_level=grade_level,
                        chapter_title=chapter.title,
                        quiz_difficulty=tier.label,
                        quiz_number=slot,
                        error_message=str(exc) or type(exc).__name__,
                        retry_count=0,
                    )
        except _RunSuperseded:
            raise
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Quiz tier %s crashed for %s", tier.label, chapter.title)
            summary["failed"] += 1
            record_failure(
                "quiz",
                subject_name=subject.name,
                grade_level=grade_level,
                chapter_title=chapter.title,
                quiz_difficulty=tier.label,
                error_message=str(exc) or type(exc).__name__,
                retry_count=0,
            )


def generate_all_quizzes(client: GenerationClient | None = None) -> Dict[str, Any]:
    """Fill every chapter up to five quizzes per difficulty tier.

    Slots are generated one at a time. The persisted running flag is checked
    before every chapter and every slot, so a stop takes effect after at most
    one more generation call. Never raises.
    """
    summary: Dict[str, Any] = {"generated": 0, "skipped": 0, "failed": 0, "stopped": False}
    run_id: str | None = None
    try:
        client = client or get_generation_client()
        chapters = catalog_service.list_chapters()
        levels = catalog_service.active_quiz_levels(chapters)
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
            "Quiz generation run %s started at level %s/%s", run_id, start_index + 1, len(levels)
        )

        try:
            for index in range(start_index, len(levels)):
                _ensure_running(run_id)
                grade_level = levels[index]
                try:
                    level_chapters = catalog_service.chapters_for_level(chapters, grade_level)
                    _checkpoint(
                        run_id,
                        current_level=grade_level,
                        current_level_index=index + 1,
                        total_levels=len(levels),
                        current_lesson=None,
                        current_lesson_index=0,
                        total_lessons=len(level_chapters),
                    )
                    for chapter_index, chapter in enumerate(level_chapters, start=1):
                        _ensure_running(run_id)
                        subject = None
                        try:
                            subject = db.session.get(Subject, chapter.subject_id)
                            if subject is None:
                                current_app.logger.warning(
                                    "Skipping chapter %s (%s): subject %s not found",
                                    chapter.title,
                                    grade_level,
                                    chapter.subject_id,
                                )
                                continue
                            position = {
                                "current_level": grade_level,
                                "current_level_index": index + 1,
                                "total_levels": len(levels),
                                "current_subject": subject.name,
                                "current_lesson": chapter.title,
                                "current_lesson_index": chapter_index,
                                "total_lessons": len(level_chapters),
                            }
                            _generate_for_chapter(
                                client, run_id, chapter, subject, grade_level, position, summary
                            )
                        except _RunSuperseded:
                            raise
                        except Exception as exc:
                            db.session.rollback()
                            current_app.logger.exception(
                                "Quiz generation crashed for chapter %s (%s)", chapter.title, grade_level
                            )
                            summary["failed"] += 1
                            record_failure(
                                "quiz",
                                subject_name=subject.name if subject is not None else "Unknown",
                                grade_level=grade_level,
                                chapter_title=chapter.title,
                                error_message=str(exc) or type(exc).__name__,
                                retry_count=0,
                            )
                except _RunSuperseded:
                    raise
                except Exception:
                    db.session.rollback()
                    current_app.logger.exception("Quiz generation crashed on level %s", grade_level)
        except _RunSuperseded:
            summary["stopped"] = True
            current_app.logger.info("Quiz generation run %s stopped", run_id)
            return summary

        if checkpoint_service.finish_run(JOB_TYPE, run_id, level_count=len(levels)):
            current_app.logger.info(
                "Quiz generation complete: %s generated, %s tier(s) skipped, %s failed",
                summary["generated"],
                summary["skipped"],
                summary["failed"],
            )
        else:
            summary["stopped"] = True
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Quiz generation run %s crashed", run_id)
        if run_id is not None:
            try:
                checkpoint_service.fail_run(JOB_TYPE, run_id)
            except Exception:
                current_app.logger.exception("Could not mark quiz run %s as failed", run_id)
    return summary
