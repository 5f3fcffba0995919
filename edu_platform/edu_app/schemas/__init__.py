"""Serialization / validation schemas (Marshmallow)."""

from .generation_schema import (
    GenerationEnvelopeSchema,
    GeneratedChapterSchema,
    ChapterBatchSchema,
    GeneratedQuizSchema,
    JobTypeSchema,
    FailureListQuerySchema,
)

__all__ = [
    "GenerationEnvelopeSchema",
    "GeneratedChapterSchema",
    "ChapterBatchSchema",
    "GeneratedQuizSchema",
    "JobTypeSchema",
    "FailureListQuerySchema",
]
