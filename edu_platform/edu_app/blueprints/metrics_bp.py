"""Metrics endpoint for Prometheus scraping."""

from __future__ import annotations

from flask import Blueprint, Response, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..metrics import latest_metrics, observe_job_state, observe_pending_failures
from ..models import BulkGenerationProgress, FailedGeneration

metrics_bp = Blueprint("metrics_bp", __name__)


def _refresh_job_gauges() -> None:
    try:
        for checkpoint in BulkGenerationProgress.query.all():
            observe_job_state(
                checkpoint.generation_type,
                bool(checkpoint.is_running),
                checkpoint.current_level_index,
            )
        pending = FailedGeneration.query.filter(
            FailedGeneration.retried_successfully_at.is_(None)
        ).count()
        observe_pending_failures(pending)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Could not refresh generation gauges: %s", exc)


@metrics_bp.get("/metrics")
def metrics():
    _refresh_job_gauges()
    payload, content_type = latest_metrics()
    return Response(payload, mimetype=content_type)
