"""Tests for the bulk generation admin endpoints."""

from __future__ import annotations

from conftest import make_chapter, make_subject
from edu_app.services import checkpoint_service, failure_ledger

BASE = "/api/admin/generation"


def _seed_catalog():
    maths = make_subject("Mathématiques", ["CP"])
    make_subject("Sciences", ["CE1"])
    return make_chapter(maths, "Les nombres", "CP")


def test_ping(client):
    resp = client.get(f"{BASE}/ping")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_progress_lists_both_jobs(client):
    resp = client.get(f"{BASE}/progress")
    assert resp.status_code == 200
    jobs = resp.get_json()["jobs"]
    assert [job["generation_type"] for job in jobs] == ["lessons", "quizzes"]
    assert all(job["is_running"] is False for job in jobs)


def test_unknown_job_type_is_404(client):
    assert client.get(f"{BASE}/progress/videos").status_code == 404
    assert client.post(f"{BASE}/videos/start").status_code == 404


def test_start_runs_lessons_and_reports_summary(client, fake_client):
    _seed_catalog()

    resp = client.post(f"{BASE}/lessons/start")

    assert resp.status_code == 202
    payload = resp.get_json()
    assert payload["summary"]["generated"] == 2
    assert payload["job"]["current_level"] == "done"
    assert payload["job"]["progress_percent"] == 100
    assert [call["subject"] for call in fake_client.chapter_calls] == ["Sciences"]


def test_start_refuses_when_already_running(client, fake_client):
    checkpoint_service.begin_run("quizzes", current_level="CP", total_levels=1)

    resp = client.post(f"{BASE}/quizzes/start")

    assert resp.status_code == 409
    assert fake_client.total_calls == 0


def test_stop_then_reset(client):
    checkpoint_service.begin_run("quizzes", current_level="CP", total_levels=3)

    assert client.post(f"{BASE}/quizzes/reset").status_code == 409

    stop = client.post(f"{BASE}/quizzes/stop")
    assert stop.status_code == 200
    assert stop.get_json()["job"]["is_running"] is False
    assert stop.get_json()["job"]["current_level"] == "CP"

    reset = client.post(f"{BASE}/quizzes/reset")
    assert reset.status_code == 200
    assert reset.get_json()["job"]["current_level"] == ""
    assert reset.get_json()["job"]["total_levels"] == 0


def test_failure_listing_retry_and_delete(client, fake_client):
    chapter = _seed_catalog()
    quiz = failure_ledger.record_failure(
        "quiz",
        subject_name="Mathématiques",
        grade_level="CP",
        chapter_title=chapter.title,
        quiz_difficulty="Difficile",
        quiz_number=1,
        error_message="Timeout: generation took longer than 90s",
        retry_count=3,
    )
    lesson = failure_ledger.record_failure(
        "lesson",
        subject_name="Latin",
        grade_level="CE1",
        error_message="HTTP 500: boom",
        retry_count=3,
    )
    quiz_id, lesson_id = quiz.id, lesson.id

    listing = client.get(f"{BASE}/failures")
    assert listing.status_code == 200
    assert listing.get_json()["total"] == 2

    retried = client.post(f"{BASE}/failures/{quiz_id}/retry")
    assert retried.status_code == 200
    assert retried.get_json()["success"] is True
    assert retried.get_json()["failure"]["retried_successfully_at"] is not None

    assert client.get(f"{BASE}/failures").get_json()["total"] == 1
    assert client.get(f"{BASE}/failures?include_resolved=1").get_json()["total"] == 2

    retry_all = client.post(f"{BASE}/failures/retry-all")
    assert retry_all.get_json() == {"attempted": 1, "succeeded": 0, "failed": 1}

    assert client.delete(f"{BASE}/failures/{lesson_id}").status_code == 204
    assert client.delete(f"{BASE}/failures/{lesson_id}").status_code == 404
    assert client.post(f"{BASE}/failures/{lesson_id}/retry").status_code == 404


def test_invalid_failure_query_is_400(client):
    resp = client.get(f"{BASE}/failures?limit=0")
    assert resp.status_code == 400
    assert "limit" in resp.get_json()["errors"]


def test_event_stream_starts_with_snapshot(client):
    resp = client.get(f"{BASE}/events", buffered=False)
    try:
        assert resp.status_code == 200
        assert resp.mimetype == "text/event-stream"
        first = next(iter(resp.response))
        assert b'"type": "snapshot"' in first
    finally:
        resp.close()
