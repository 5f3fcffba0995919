"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "edu_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "edu_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    ["endpoint"],
)
GENERATION_CALLS = Counter(
    "edu_generation_calls_total",
    "Calls made to the content generation service",
    ["kind", "outcome"],
)
GENERATION_LATENCY = Histogram(
    "edu_generation_latency_seconds",
    "Latency of content generation calls in seconds",
    ["kind"],
    buckets=(1, 5, 10, 30, 60, 90, 120, 180, 240),
)
GENERATION_FAILURES = Counter(
    "edu_generation_failures_total",
    "Units of work recorded in the failure ledger",
    ["generation_type"],
)
SUPERVISOR_ACTIONS = Counter(
    "edu_generation_supervisor_actions_total",
    "Checkpoints unblocked or restarted by the background supervisors",
    ["action", "job_type"],
)
JOB_RUNNING = Gauge(
    "edu_generation_job_running",
    "1 while the checkpoint of a generation job is flagged as running",
    ["job_type"],
)
JOB_LEVEL_PROGRESS = Gauge(
    "edu_generation_job_level_index",
    "Last grade level index reached by a generation job",
    ["job_type"],
)
PENDING_FAILURES = Gauge(
    "edu_generation_pending_failures",
    "Failure ledger entries not yet retried successfully",
)


def record_request(method: str, endpoint: str, status: int, latency: float) -> None:
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)


def record_generation_call(kind: str, outcome: str, latency: float) -> None:
    GENERATION_CALLS.labels(kind=kind, outcome=outcome).inc()
    GENERATION_LATENCY.labels(kind=kind).observe(latency)


def record_failure(generation_type: str) -> None:
    GENERATION_FAILURES.labels(generation_type=generation_type).inc()


def record_supervisor_action(action: str, job_type: str) -> None:
    SUPERVISOR_ACTIONS.labels(action=action, job_type=job_type).inc()


def observe_job_state(job_type: str, running: bool, level_index: int) -> None:
    JOB_RUNNING.labels(job_type=job_type).set(1 if running else 0)
    JOB_LEVEL_PROGRESS.labels(job_type=job_type).set(level_index or 0)


def observe_pending_failures(count: int) -> None:
    PENDING_FAILURES.set(count)


def latest_metrics() -> tuple[bytes, str]:
    data = generate_latest()
    return data, CONTENT_TYPE_LATEST
