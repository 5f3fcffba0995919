"""Admin endpoints for the bulk lesson/quiz generation pipelines."""

from __future__ import annotations

import json
from http import HTTPStatus

from flask import Blueprint, Response, abort, current_app, jsonify, request, stream_with_context
from marshmallow import ValidationError

from ..models.generation import JOB_TYPES
from ..schemas import FailureListQuerySchema, JobTypeSchema
from ..services import checkpoint_service, failure_ledger, generation_runner, retry_service
from ..services.generation_events import generation_event_broker
from ..services.generation_runner import JobAlreadyRunning

generation_bp = Blueprint("generation_bp", __name__)
job_type_schema = JobTypeSchema()
failure_list_query_schema = FailureListQuerySchema()


@generation_bp.errorhandler(ValidationError)
def handle_validation_error(err: ValidationError):
    return jsonify({"errors": err.messages}), HTTPStatus.BAD_REQUEST


def _require_job_type(job_type: str) -> str:
    if job_type_schema.validate({"job_type": job_type}):
        abort(HTTPStatus.NOT_FOUND, description=f"Unknown generation type: {job_type}")
    return job_type


@generation_bp.get("/ping")
def ping():
    return jsonify({"module": "generation", "status": "ok"})


@generation_bp.get("/progress")
def progress_all():
    return jsonify({"jobs": [checkpoint_service.describe_progress(job) for job in JOB_TYPES]})


@generation_bp.get("/progress/<job_type>")
def progress(job_type: str):
    _require_job_type(job_type)
    return jsonify(checkpoint_service.describe_progress(job_type))


@generation_bp.post("/<job_type>/start")
def start_job(job_type: str):
    _require_job_type(job_type)
    try:
        summary = generation_runner.start(job_type)
    except JobAlreadyRunning as exc:
        return jsonify({"message": str(exc)}), HTTPStatus.CONFLICT
    payload = {"job": checkpoint_service.describe_progress(job_type)}
    if summary is not None:
        payload["summary"] = summary
    return jsonify(payload), HTTPStatus.ACCEPTED


@generation_bp.post("/<job_type>/stop")
def stop_job(job_type: str):
    _require_job_type(job_type)
    generation_runner.stop(job_type)
    return jsonify({"job": checkpoint_service.describe_progress(job_type)})


@generation_bp.post("/<job_type>/reset")
def reset_job(job_type: str):
    _require_job_type(job_type)
    if checkpoint_service.is_running(job_type):
        return (
            jsonify({"message": f"{job_type} generation is running; stop it first"}),
            HTTPStatus.CONFLICT,
        )
    checkpoint_service.reset(job_type)
    return jsonify({"job": checkpoint_service.describe_progress(job_type)})


@generation_bp.get("/failures")
def list_failures():
    params = failure_list_query_schema.load(request.args)
    records = failure_ledger.list_failures(
        pending_only=not params["include_resolved"], limit=params["limit"]
    )
    return jsonify({"items": [record.serialize() for record in records], "total": len(records)})


@generation_bp.post("/failures/<int:failure_id>/retry")
def retry_failure(failure_id: int):
    record = failure_ledger.get_failure(failure_id)
    if record is None:
        abort(HTTPStatus.NOT_FOUND)
    succeeded = retry_service.retry_one(record)
    return jsonify({"success": succeeded, "failure": record.serialize()})


@generation_bp.post("/failures/retry-all")
def retry_all_failures():
    summary = retry_service.retry_all()
    return jsonify(summary)


@generation_bp.delete("/failures/<int:failure_id>")
def delete_failure(failure_id: int):
    if not failure_ledger.delete_failure(failure_id):
        abort(HTTPStatus.NOT_FOUND)
    return "", HTTPStatus.NO_CONTENT


@generation_bp.get("/events")
def generation_events():
    snapshot = [checkpoint_service.describe_progress(job) for job in JOB_TYPES]
    keepalive = float(current_app.config.get("GENERATION_EVENTS_KEEPALIVE_SEC", 15))

    def event_stream():
        yield f"data: {json.dumps({'type': 'snapshot', 'payload': snapshot}, default=str)}\n\n"
        for message in generation_event_broker.listen(timeout=keepalive):
            yield f"data: {message}\n\n"

    return Response(stream_with_context(event_stream()), mimetype="text/event-stream")
