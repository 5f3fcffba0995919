"""Database models package."""

from .catalog import Subject, Chapter, Activity
from .generation import BulkGenerationProgress, FailedGeneration

__all__ = [
    "Subject",
    "Chapter",
    "Activity",
    "BulkGenerationProgress",
    "FailedGeneration",
]
