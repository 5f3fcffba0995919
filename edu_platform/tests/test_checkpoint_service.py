"""Tests for the bulk generation checkpoint store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import make_chapter, make_subject
from edu_app.extensions import db
from edu_app.models.generation import ensure_aware, utcnow
from edu_app.services import checkpoint_service


def test_load_missing_checkpoint_returns_none(app_with_db):
    assert checkpoint_service.load_checkpoint("lessons") is None
    assert checkpoint_service.is_running("lessons") is False


def test_save_checkpoint_upserts_and_stamps_updated_at(app_with_db):
    before = utcnow() - timedelta(seconds=1)
    assert checkpoint_service.save_checkpoint("quizzes", current_level="CP", total_levels=3)
    assert checkpoint_service.save_checkpoint("quizzes", current_level_index=1)

    checkpoint = checkpoint_service.load_checkpoint("quizzes")
    assert checkpoint.current_level == "CP"
    assert checkpoint.current_level_index == 1
    assert checkpoint.total_levels == 3
    assert ensure_aware(checkpoint.updated_at) >= before
    assert checkpoint_service.list_checkpoints() == [checkpoint]


def test_unknown_job_type_is_rejected(app_with_db):
    with pytest.raises(ValueError):
        checkpoint_service.save_checkpoint("videos", current_level="CP")
    with pytest.raises(ValueError):
        checkpoint_service.load_checkpoint("videos")


def test_unknown_field_is_rejected(app_with_db):
    with pytest.raises(ValueError):
        checkpoint_service.save_checkpoint("lessons", colour="blue")


def test_begin_run_claims_checkpoint(app_with_db):
    run_id = checkpoint_service.begin_run("lessons", current_level="CP", total_levels=2)

    assert checkpoint_service.is_running("lessons")
    assert checkpoint_service.is_running("lessons", run_id)
    assert not checkpoint_service.is_running("lessons", "someone-else")
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.run_id == run_id
    assert checkpoint.is_paused is False


def test_run_scoped_write_discarded_after_stop(app_with_db):
    run_id = checkpoint_service.begin_run("lessons", current_level="CP", total_levels=2)
    assert checkpoint_service.save_checkpoint("lessons", run_id=run_id, current_level_index=1)

    checkpoint_service.stop("lessons")
    assert checkpoint_service.save_checkpoint("lessons", run_id=run_id, current_level_index=2) is False

    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.current_level_index == 1
    assert checkpoint.is_running is False


def test_run_scoped_write_discarded_for_superseded_run(app_with_db):
    old_run = checkpoint_service.begin_run("quizzes", current_level="CP", total_levels=1)
    new_run = checkpoint_service.begin_run("quizzes", current_level="CE1", total_levels=1)

    assert checkpoint_service.save_checkpoint("quizzes", run_id=old_run, current_level="CM2") is False
    assert checkpoint_service.save_checkpoint("quizzes", run_id=new_run, current_level_index=1)
    checkpoint = checkpoint_service.load_checkpoint("quizzes")
    assert checkpoint.current_level == "CE1"
    assert checkpoint.run_id == new_run


def test_finish_and_fail_run(app_with_db):
    run_id = checkpoint_service.begin_run("lessons", current_level="CP", total_levels=2)
    assert checkpoint_service.finish_run("lessons", run_id, level_count=2)
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.current_level == "done"
    assert checkpoint.current_level_index == 2
    assert checkpoint.is_running is False
    assert checkpoint.is_terminal

    run_id = checkpoint_service.begin_run("quizzes", current_level="CP", total_levels=2)
    assert checkpoint_service.fail_run("quizzes", run_id)
    checkpoint = checkpoint_service.load_checkpoint("quizzes")
    assert checkpoint.current_level == "error"
    assert checkpoint.current_level_index == 0
    assert checkpoint.total_levels == 0
    assert checkpoint.is_running is False


def test_reset_clears_position(app_with_db):
    run_id = checkpoint_service.begin_run("quizzes", current_level="CP", total_levels=2)
    checkpoint_service.save_checkpoint(
        "quizzes", run_id=run_id, current_lesson="Les nombres", current_quiz_number=7
    )
    checkpoint_service.stop("quizzes")
    checkpoint_service.reset("quizzes")

    checkpoint = checkpoint_service.load_checkpoint("quizzes")
    assert checkpoint.current_level == ""
    assert checkpoint.current_level_index == 0
    assert checkpoint.current_lesson is None
    assert checkpoint.current_quiz_number is None
    assert checkpoint.run_id is None


def test_describe_progress_derives_percent_from_catalog(app_with_db):
    maths = make_subject("Mathématiques", ["CP", "CE1", "CE2", "CM1"])
    make_chapter(maths, "Les nombres", "CP")

    empty = checkpoint_service.describe_progress("lessons")
    assert empty["active_levels"] == 4
    assert empty["progress_percent"] == 0
    assert empty["is_running"] is False

    checkpoint_service.save_checkpoint("lessons", current_level="CE1", current_level_index=2, total_levels=4)
    progress = checkpoint_service.describe_progress("lessons")
    assert progress["progress_percent"] == 50
    assert progress["is_terminal"] is False
    assert progress["is_stale"] is False

    quizzes = checkpoint_service.describe_progress("quizzes")
    assert quizzes["active_levels"] == 1


def test_describe_progress_flags_stale_running_job(app_with_db):
    checkpoint_service.begin_run("lessons", current_level="CP", total_levels=1)
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    checkpoint.updated_at = utcnow() - timedelta(minutes=10)
    db.session.commit()
    assert checkpoint_service.describe_progress("lessons")["is_stale"] is True
