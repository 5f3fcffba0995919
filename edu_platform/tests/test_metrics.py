"""Tests for logging/metrics hardening."""

from __future__ import annotations

from edu_app.services import checkpoint_service, failure_ledger


def test_metrics_endpoint(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"edu_requests_total" in resp.data


def test_metrics_expose_generation_gauges(client):
    checkpoint_service.begin_run("quizzes", current_level="CP", total_levels=2)
    failure_ledger.record_failure(
        "quiz",
        subject_name="Mathématiques",
        grade_level="CP",
        chapter_title="Les nombres",
        quiz_difficulty="Facile",
        quiz_number=1,
        error_message="HTTP 502: Bad Gateway",
        retry_count=3,
    )

    resp = client.get("/metrics")

    assert b'edu_generation_job_running{job_type="quizzes"} 1.0' in resp.data
    assert b"edu_generation_pending_failures 1.0" in resp.data
    assert b"edu_generation_failures_total" in resp.data


def test_request_id_header(client):
    resp = client.get("/api/admin/generation/ping")
    assert resp.status_code == 200
    assert "X-Request-ID" in resp.headers


def test_incoming_request_id_is_echoed(client):
    resp = client.get("/api/admin/generation/ping", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"
