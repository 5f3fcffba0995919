"""Business logic for bulk content generation (drivers, checkpoints, ledger)."""

from . import (
    catalog_service,
    checkpoint_service,
    failure_ledger,
    generation_client,
    generation_runner,
    lesson_generation,
    quiz_generation,
    retry_service,
    supervisors,
)

__all__ = [
    "catalog_service",
    "checkpoint_service",
    "failure_ledger",
    "generation_client",
    "generation_runner",
    "lesson_generation",
    "quiz_generation",
    "retry_service",
    "supervisors",
]
