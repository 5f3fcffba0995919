"""Manual re-attempts of units recorded in the failure ledger."""

from __future__ import annotations

from datetime import date
from typing import Dict

from flask import current_app

from ..extensions import db
from ..models import FailedGeneration
from . import catalog_service
from .failure_ledger import list_failures, mark_resolved, mark_retry_failed
from .generation_client import GenerationClient, get_generation_client
from .quiz_generation import TIERS, generate_quiz_slot, slots_per_tier, tier_for
from .retry import RETRYABLE_ERRORS


def _retry_lesson(record: FailedGeneration, client: GenerationClient) -> bool:
    subject = catalog_service.find_subject_by_name(record.subject_name)
    if subject is None:
        current_app.logger.warning(
            "Cannot retry lesson failure %s: subject %s not found", record.id, record.subject_name
        )
        return False
    if catalog_service.count_chapters(subject.id, record.grade_level) > 0:
        current_app.logger.info(
            "Lesson failure %s already covered for %s (%s)",
            record.id,
            subject.name,
            record.grade_level,
        )
        mark_resolved(record)
        return True
    chapters = client.generate_chapters(
        subject.name,
        record.grade_level,
        str(date.today().year),
        timeout=float(current_app.config.get("BULK_LESSON_TIMEOUT_SEC", 180)),
    )
    catalog_service.insert_chapters(subject, record.grade_level, chapters)
    mark_resolved(record)
    return True


def _retry_quiz(record: FailedGeneration, client: GenerationClient) -> bool:
    subject = catalog_service.find_subject_by_name(record.subject_name)
    chapter = (
        catalog_service.find_chapter(record.chapter_title, record.grade_level, subject.id)
        if subject is not None and record.chapter_title
        else None
    )
    if subject is None or chapter is None:
        current_app.logger.warning(
            "Cannot retry quiz failure %s: subject or chapter not found (%s / %s)",
            record.id,
            record.subject_name,
            record.chapter_title,
        )
        return False
    if record.quiz_difficulty:
        tier = tier_for(record.quiz_difficulty)
        if tier is None:
            current_app.logger.warning(
                "Cannot retry quiz failure %s: unknown difficulty %r", record.id, record.quiz_difficulty
            )
            return False
        tiers = [tier]
    else:
        # Chapter-scope failure: every tier of the chapter is re-derived.
        tiers = list(TIERS)
    slots = slots_per_tier()
    if record.quiz_number and len(tiers) == 1:
        covered = catalog_service.count_quizzes(chapter.id, tiers[0].score) >= slots
        pending = [] if covered else [(tiers[0], record.quiz_number)]
    else:
        pending = [
            (tier, slot)
            for tier in tiers
            for slot in range(catalog_service.count_quizzes(chapter.id, tier.score) + 1, slots + 1)
        ]
    if not pending:
        current_app.logger.info(
            "Quiz failure %s already covered for %s (%s)",
            record.id,
            chapter.title,
            record.quiz_difficulty or "all tiers",
        )
        mark_resolved(record)
        return True
    timeout = float(current_app.config.get("BULK_QUIZ_TIMEOUT_SEC", 90))
    for tier, slot in pending:
        generate_quiz_slot(
            client,
            subject=subject,
            chapter=chapter,
            grade_level=record.grade_level,
            tier=tier,
            slot=slot,
            timeout=timeout,
        )
    mark_resolved(record)
    return True


def retry_one(record: FailedGeneration, client: GenerationClient | None = None) -> bool:
    """Re-issue the generation call for one ledger entry. Never raises on generation errors."""
    if not record.is_pending:
        return True
    client = client or get_generation_client()
    try:
        if record.generation_type == "lesson":
            return _retry_lesson(record, client)
        return _retry_quiz(record, client)
    except RETRYABLE_ERRORS as exc:
        db.session.rollback()
        message = str(exc) or type(exc).__name__
        current_app.logger.warning("Retry of failure %s failed: %s", record.id, message)
        mark_retry_failed(record, message)
        return False


def retry_all(client: GenerationClient | None = None) -> Dict[str, int]:
    """Retry every pending ledger entry, one after another."""
    client = client or get_generation_client()
    summary = {"attempted": 0, "succeeded": 0, "failed": 0}
    for record in list_failures(pending_only=True):
        summary["attempted"] += 1
        if retry_one(record, client):
            summary["succeeded"] += 1
        else:
            summary["failed"] += 1
    current_app.logger.info(
        "Retried %s failure(s): %s succeeded, %s failed",
        summary["attempted"],
        summary["succeeded"],
        summary["failed"],
    )
    return summary

