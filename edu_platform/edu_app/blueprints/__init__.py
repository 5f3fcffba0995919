"""REST API blueprints (bulk generation admin, metrics)."""

from __future__ import annotations

from .generation_bp import generation_bp
from .metrics_bp import metrics_bp

BLUEPRINTS = (
    (generation_bp, "/api/admin/generation"),
    (metrics_bp, ""),
)

__all__ = [
    "BLUEPRINTS",
    "generation_bp",
    "metrics_bp",
]
