"""HTTP client for the AI content generation service."""

from __future__ import annotations

import json
from dataclasses import dataclass
from time import perf_counter

import requests
from flask import current_app
from marshmallow import ValidationError

from ..metrics import record_generation_call
from ..schemas import ChapterBatchSchema, GeneratedQuizSchema, GenerationEnvelopeSchema

_envelope_schema = GenerationEnvelopeSchema()
_chapter_batch_schema = ChapterBatchSchema()
_quiz_schema = GeneratedQuizSchema()


class GenerationError(RuntimeError):
    """Raised for any failed generation call (timeout, HTTP error, malformed body)."""


@dataclass
class GenerationClient:
    api_base: str
    api_key: str
    connect_timeout: float = 15.0

    def generate_chapters(
        self, subject: str, grade_level: str, school_year: str, *, timeout: float
    ) -> list[dict]:
        data = self._post(
            "generate-chapter",
            {"subject": subject, "gradeLevel": grade_level, "schoolYear": school_year},
            timeout=timeout,
            kind="chapters",
        )
        try:
            batch = _chapter_batch_schema.load(data)
        except ValidationError as exc:
            raise GenerationError(f"Invalid response: chapters {exc.messages}") from exc
        return batch["chapters"]

    def generate_quiz(
        self,
        subject: str,
        grade_level: str,
        chapter: str,
        topic: str,
        number_of_questions: int,
        difficulty: str,
        *,
        timeout: float,
    ) -> dict:
        data = self._post(
            "generate-quiz",
            {
                "subject": subject,
                "gradeLevel": grade_level,
                "chapter": chapter,
                "topic": topic,
                "numberOfQuestions": number_of_questions,
                "difficulty": difficulty,
            },
            timeout=timeout,
            kind="quiz",
        )
        try:
            return _quiz_schema.load(data)
        except ValidationError as exc:
            raise GenerationError(f"Invalid response: quiz {exc.messages}") from exc

    def _post(self, path: str, payload: dict, *, timeout: float, kind: str) -> dict:
        if not self.api_key:
            raise GenerationError("GENERATION_API_KEY is not configured")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        started = perf_counter()
        outcome = "error"
        try:
            try:
                response = requests.post(
                    f"{self.api_base.rstrip('/')}/{path}",
                    headers=headers,
                    data=json.dumps(payload),
                    timeout=(self.connect_timeout, timeout),
                )
            except requests.Timeout as exc:
                outcome = "timeout"
                raise GenerationError(f"Timeout: generation took longer than {timeout:g}s") from exc
            except requests.RequestException as exc:
                raise GenerationError(f"Request failed: {exc}") from exc
            if not response.ok:
                outcome = "http_error"
                raise GenerationError(f"HTTP {response.status_code}: {response.text[:300]}")
            try:
                body = response.json()
            except ValueError as exc:
                outcome = "invalid"
                raise GenerationError("Invalid response: body is not JSON") from exc
            try:
                envelope = _envelope_schema.load(body if isinstance(body, dict) else {})
            except ValidationError as exc:
                outcome = "invalid"
                raise GenerationError(f"Invalid response: {exc.messages}") from exc
            outcome = "ok"
            return envelope["data"]
        finally:
            record_generation_call(kind, outcome, perf_counter() - started)


def get_generation_client() -> GenerationClient:
    app = current_app
    client = app.extensions.get("generation_client")
    if client is None:
        client = GenerationClient(
            api_base=app.config.get("GENERATION_API_BASE", ""),
            api_key=app.config.get("GENERATION_API_KEY", ""),
        )
        app.extensions["generation_client"] = client
    return client
