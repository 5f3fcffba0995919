"""Pytest configuration for ensuring project modules resolve correctly."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from edu_app import create_app
from edu_app.extensions import db
from edu_app.models import Activity, Chapter, Subject
from edu_app.services.generation_client import GenerationError


class FakeGenerationClient:
    """Scripted stand-in for the HTTP generation client.

    ``fail_subjects`` / ``fail_chapters`` always raise; ``fail_all`` makes
    every call raise. ``on_call`` runs before each call returns, which lets a
    test stop or supersede a run while a request is "in flight".
    """

    def __init__(
        self,
        chapters_per_call: int = 2,
        fail_all: bool = False,
        fail_subjects=(),
        fail_chapters=(),
        on_call=None,
        error: str = "Timeout: generation took longer than 180s",
    ) -> None:
        self.chapters_per_call = chapters_per_call
        self.fail_all = fail_all
        self.fail_subjects = set(fail_subjects)
        self.fail_chapters = set(fail_chapters)
        self.on_call = on_call
        self.error = error
        self.chapter_calls: list[dict] = []
        self.quiz_calls: list[dict] = []

    @property
    def total_calls(self) -> int:
        return len(self.chapter_calls) + len(self.quiz_calls)

    def _after_call(self) -> None:
        if self.on_call is not None:
            self.on_call(self)

    def generate_chapters(self, subject, grade_level, school_year, *, timeout):
        self.chapter_calls.append(
            {"subject": subject, "grade_level": grade_level, "school_year": school_year, "timeout": timeout}
        )
        self._after_call()
        if self.fail_all or subject in self.fail_subjects:
            raise GenerationError(self.error)
        return [
            {"title": f"{subject} {grade_level} chapitre {index + 1}", "description": None, "order_index": None}
            for index in range(self.chapters_per_call)
        ]

    def generate_quiz(
        self, subject, grade_level, chapter, topic, number_of_questions, difficulty, *, timeout
    ):
        self.quiz_calls.append(
            {
                "subject": subject,
                "grade_level": grade_level,
                "chapter": chapter,
                "topic": topic,
                "number_of_questions": number_of_questions,
                "difficulty": difficulty,
                "timeout": timeout,
            }
        )
        self._after_call()
        if self.fail_all or chapter in self.fail_chapters:
            raise GenerationError(self.error)
        return {
            "title": f"Quiz {chapter}",
            "questions": [
                {
                    "question": "Combien font 2 + 2 ?",
                    "options": ["3", "4", "5", "6"],
                    "correctAnswer": "4",
                    "explanation": "2 + 2 = 4",
                }
            ],
        }


@pytest.fixture()
def app_with_db():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app_with_db):
    return app_with_db.test_client()


@pytest.fixture()
def fake_client(app_with_db):
    fake = FakeGenerationClient()
    app_with_db.extensions["generation_client"] = fake
    return fake


def make_subject(name: str, grade_levels: list[str]) -> Subject:
    subject = Subject(name=name, grade_levels=grade_levels)
    db.session.add(subject)
    db.session.commit()
    return subject


def make_chapter(subject: Subject, title: str, grade_level: str, order_index: int = 0) -> Chapter:
    chapter = Chapter(
        subject_id=subject.id, title=title, grade_level=grade_level, order_index=order_index
    )
    db.session.add(chapter)
    db.session.commit()
    return chapter


def make_quizzes(chapter: Chapter, difficulty: int, count: int) -> None:
    for index in range(count):
        db.session.add(
            Activity(
                chapter_id=chapter.id,
                subject_id=chapter.subject_id,
                title=f"{chapter.title} existing {difficulty}-{index + 1}",
                type="quiz",
                difficulty=difficulty,
                points=50,
                grade_level=chapter.grade_level,
                content={"questions": []},
            )
        )
    db.session.commit()
