"""Read/write access to the curriculum catalog used by bulk generation."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from ..extensions import db
from ..models import Activity, Chapter, Subject

GRADE_LEVELS = ("CP", "CE1", "CE2", "CM1", "CM2")


def list_subjects() -> List[Subject]:
    return Subject.query.order_by(Subject.id.asc()).all()


def list_chapters() -> List[Chapter]:
    return Chapter.query.order_by(Chapter.id.asc()).all()


def order_levels(levels: Iterable[str]) -> List[str]:
    present = set(levels)
    return [level for level in GRADE_LEVELS if level in present]


def active_lesson_levels(subjects: Sequence[Subject]) -> List[str]:
    return order_levels(level for subject in subjects for level in (subject.grade_levels or []))


def active_quiz_levels(chapters: Sequence[Chapter]) -> List[str]:
    return order_levels(chapter.grade_level for chapter in chapters)


def subjects_for_level(subjects: Sequence[Subject], grade_level: str) -> List[Subject]:
    return [subject for subject in subjects if subject.offers(grade_level)]


def chapters_for_level(chapters: Sequence[Chapter], grade_level: str) -> List[Chapter]:
    return [chapter for chapter in chapters if chapter.grade_level == grade_level]


def count_chapters(subject_id: int, grade_level: str) -> int:
    return Chapter.query.filter_by(subject_id=subject_id, grade_level=grade_level).count()


def count_quizzes(chapter_id: int, difficulty_score: int) -> int:
    return Activity.query.filter_by(chapter_id=chapter_id, difficulty=difficulty_score).count()


def insert_chapters(subject: Subject, grade_level: str, chapters: Sequence[dict]) -> List[Chapter]:
    rows = []
    for index, entry in enumerate(chapters):
        order_index = entry.get("order_index")
        rows.append(
            Chapter(
                subject_id=subject.id,
                title=entry["title"],
                description=entry.get("description"),
                grade_level=grade_level,
                order_index=order_index if order_index is not None else index,
            )
        )
    db.session.add_all(rows)
    db.session.commit()
    return rows


def insert_quiz(
    *,
    chapter: Chapter,
    subject: Subject,
    title: str,
    difficulty_score: int,
    points: int,
    grade_level: str,
    questions: list,
) -> Activity:
    activity = Activity(
        chapter_id=chapter.id,
        subject_id=subject.id,
        title=title,
        type="quiz",
        difficulty=difficulty_score,
        points=points,
        grade_level=grade_level,
        content={"questions": questions},
    )
    db.session.add(activity)
    db.session.commit()
    return activity


def find_subject_by_name(name: str) -> Subject | None:
    return Subject.query.filter_by(name=name).order_by(Subject.id.asc()).first()


def find_chapter(title: str, grade_level: str, subject_id: int | None = None) -> Chapter | None:
    query = Chapter.query.filter_by(title=title, grade_level=grade_level)
    if subject_id is not None:
        query = query.filter_by(subject_id=subject_id)
    return query.order_by(Chapter.id.asc()).first()
