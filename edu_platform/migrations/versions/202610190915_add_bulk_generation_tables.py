"""add bulk generation checkpoint and failure ledger tables

Revision ID: 8d4f0a6c3e21
Revises: 5b1c2e7d9a10
Create Date: 2026-10-19 09:15:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "8d4f0a6c3e21"
down_revision = "5b1c2e7d9a10"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bulk_generation_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("generation_type", sa.String(length=16), nullable=False, unique=True),
        sa.Column("current_level", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("current_level_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_levels", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_subject", sa.String(length=255), nullable=True),
        sa.Column("current_subject_index", sa.Integer(), nullable=True),
        sa.Column("total_subjects", sa.Integer(), nullable=True),
        sa.Column("current_lesson", sa.String(length=255), nullable=True),
        sa.Column("current_lesson_index", sa.Integer(), nullable=True),
        sa.Column("total_lessons", sa.Integer(), nullable=True),
        sa.Column("current_quiz_type", sa.String(length=32), nullable=True),
        sa.Column("current_quiz_number", sa.Integer(), nullable=True),
        sa.Column("total_quizzes", sa.Integer(), nullable=True),
        sa.Column("is_running", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("run_id", sa.String(length=32), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "failed_generations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("generation_type", sa.String(length=16), nullable=False),
        sa.Column("subject_name", sa.String(length=255), nullable=False),
        sa.Column("grade_level", sa.String(length=16), nullable=False),
        sa.Column("chapter_title", sa.String(length=255), nullable=True),
        sa.Column("quiz_difficulty", sa.String(length=32), nullable=True),
        sa.Column("quiz_number", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=False, server_default=""),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("retried_successfully_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_failed_generations_retried_successfully_at",
        "failed_generations",
        ["retried_successfully_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_failed_generations_retried_successfully_at", table_name="failed_generations")
    op.drop_table("failed_generations")
    op.drop_table("bulk_generation_progress")
