"""Tests for the bulk chapter generation driver."""

from __future__ import annotations

import pytest

from conftest import FakeGenerationClient, make_chapter, make_subject
from edu_app.models import Chapter, FailedGeneration
from edu_app.models.generation import ensure_aware
from edu_app.services import checkpoint_service
from edu_app.services.lesson_generation import generate_all_lessons


@pytest.fixture()
def catalog(app_with_db):
    maths = make_subject("Mathématiques", ["CP"])
    francais = make_subject("Français", ["CP"])
    sciences = make_subject("Sciences", ["CE1"])
    make_chapter(sciences, "Le vivant", "CE1")
    return {"maths": maths, "francais": francais, "sciences": sciences}


def test_generates_chapters_for_uncovered_subjects(catalog):
    client = FakeGenerationClient(chapters_per_call=2)

    summary = generate_all_lessons(client)

    assert summary == {"generated": 4, "skipped": 1, "failed": 0, "stopped": False}
    assert [call["subject"] for call in client.chapter_calls] == ["Mathématiques", "Français"]
    assert all(call["timeout"] == 180 for call in client.chapter_calls)
    assert Chapter.query.filter_by(grade_level="CP").count() == 4
    orders = [
        chapter.order_index
        for chapter in Chapter.query.filter_by(subject_id=catalog["maths"].id).order_by(Chapter.id)
    ]
    assert orders == [0, 1]

    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.current_level == "done"
    assert checkpoint.current_level_index == 2
    assert checkpoint.total_levels == 2
    assert checkpoint.is_running is False


def test_rerun_issues_no_calls_for_covered_subjects(catalog):
    generate_all_lessons(FakeGenerationClient())
    checkpoint_service.reset("lessons")

    client = FakeGenerationClient()
    summary = generate_all_lessons(client)

    assert client.total_calls == 0
    assert summary["generated"] == 0
    assert summary["skipped"] == 3
    assert checkpoint_service.load_checkpoint("lessons").current_level == "done"


def test_exhausted_subject_is_recorded_and_driver_moves_on(catalog):
    client = FakeGenerationClient(fail_subjects={"Mathématiques"})

    summary = generate_all_lessons(client)

    maths_calls = [call for call in client.chapter_calls if call["subject"] == "Mathématiques"]
    assert len(maths_calls) == 3
    failures = FailedGeneration.query.all()
    assert len(failures) == 1
    failure = failures[0]
    assert failure.generation_type == "lesson"
    assert failure.subject_name == "Mathématiques"
    assert failure.grade_level == "CP"
    assert failure.retry_count == 3
    assert failure.error_message.startswith("Timeout")
    assert failure.is_pending
    assert summary["failed"] == 1
    assert Chapter.query.filter_by(subject_id=catalog["francais"].id).count() == 2
    assert checkpoint_service.load_checkpoint("lessons").current_level == "done"


def test_always_failing_client_still_reaches_terminal_state(catalog):
    client = FakeGenerationClient(fail_all=True)

    summary = generate_all_lessons(client)

    assert summary["failed"] == 2
    assert FailedGeneration.query.count() == 2
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.current_level == "done"
    assert checkpoint.is_running is False


def test_resume_reenters_last_started_level(catalog):
    checkpoint_service.save_checkpoint(
        "lessons", current_level="CE1", current_level_index=2, total_levels=2, is_running=False
    )
    make_subject("Histoire", ["CE1"])
    client = FakeGenerationClient()

    generate_all_lessons(client)

    assert [call["grade_level"] for call in client.chapter_calls] == ["CE1"]
    assert [call["subject"] for call in client.chapter_calls] == ["Histoire"]


def test_stop_takes_effect_after_in_flight_call(catalog):
    def _stop(_client):
        checkpoint_service.stop("lessons")

    client = FakeGenerationClient(on_call=_stop)

    summary = generate_all_lessons(client)

    assert client.total_calls == 1
    assert summary["stopped"] is True
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.is_running is False
    assert checkpoint.current_level == "CP"


def test_superseded_run_cannot_overwrite_checkpoint(catalog):
    new_runs = []

    def _supersede(_client):
        if not new_runs:
            new_runs.append(
                checkpoint_service.begin_run("lessons", current_level="CE1", total_levels=2)
            )

    client = FakeGenerationClient(on_call=_supersede)

    summary = generate_all_lessons(client)

    assert summary["stopped"] is True
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.run_id == new_runs[0]
    assert checkpoint.current_level == "CE1"
    assert checkpoint.is_running is True


def test_unexpected_crash_sets_error_state(catalog, monkeypatch):
    def _boom(*_args, **_kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(checkpoint_service, "finish_run", _boom)

    summary = generate_all_lessons(FakeGenerationClient())

    assert summary["generated"] == 4
    checkpoint = checkpoint_service.load_checkpoint("lessons")
    assert checkpoint.current_level == "error"
    assert checkpoint.is_running is False


def test_stop_during_failing_call_makes_no_further_attempts(catalog):
    def _stop(_client):
        checkpoint_service.stop("lessons")

    client = FakeGenerationClient(fail_all=True, on_call=_stop)

    summary = generate_all_lessons(client)

    assert client.total_calls == 1
    assert summary["stopped"] is True
    assert FailedGeneration.query.count() == 0
    assert checkpoint_service.load_checkpoint("lessons").is_running is False


def test_checkpoint_is_refreshed_between_attempts(catalog):
    stamps = []

    def _record_stamp(_client):
        stamps.append(ensure_aware(checkpoint_service.load_checkpoint("lessons").updated_at))

    client = FakeGenerationClient(fail_subjects={"Mathématiques"}, on_call=_record_stamp)

    generate_all_lessons(client)

    maths_stamps = stamps[:3]
    assert [call["subject"] for call in client.chapter_calls[:3]] == ["Mathématiques"] * 3
    assert maths_stamps[0] < maths_stamps[1] < maths_stamps[2]


def test_subject_progress_is_written_after_each_subject(catalog, monkeypatch):
    writes = []
    real_save = checkpoint_service.save_checkpoint

    def _recording_save(job_type, **fields):
        writes.append(fields.get("current_subject"))
        return real_save(job_type, **fields)

    monkeypatch.setattr(checkpoint_service, "save_checkpoint", _recording_save)

    generate_all_lessons(FakeGenerationClient())

    assert writes.count("Mathématiques") == 2
    assert writes.count("Français") == 2


def test_level_index_never_decreases_within_a_run(app_with_db, monkeypatch):
    for name, level in [("Mathématiques", "CP"), ("Français", "CE1"), ("Sciences", "CE2")]:
        make_subject(name, [level])
    make_subject("Histoire", ["CP", "CE2"])
    seen = []
    monkeypatch.setattr(
        checkpoint_service,
        "publish_checkpoint",
        lambda checkpoint: seen.append(
            (checkpoint.run_id, checkpoint.is_running, checkpoint.current_level_index)
        ),
    )

    generate_all_lessons(FakeGenerationClient(fail_subjects={"Français"}))
    checkpoint_service.save_checkpoint("lessons", current_level="CE1", current_level_index=2)
    make_subject("Géographie", ["CE2"])
    generate_all_lessons(FakeGenerationClient())

    runs = {}
    for run_id, running, level_index in seen:
        if running and run_id is not None:
            runs.setdefault(run_id, []).append(level_index)
    assert len(runs) == 2
    for indices in runs.values():
        assert indices == sorted(indices)
    first, second = runs.values()
    assert max(first) == 3
    assert second[0] == 1
