"""Edu Platform entry point.

Loads environment variables, builds the Flask app via the edu_app factory and
exposes `app` for `flask --app app run` and `flask --app app generation ...`.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# `.env` must be loaded before `create_app` reads configuration.
PROJECT_ROOT = Path(__file__).resolve().parent
if os.getenv("FLASK_SKIP_DOTENV") not in {"1", "true", "True"}:
    load_dotenv(PROJECT_ROOT / ".env")

from edu_app import create_app  # noqa: E402  (import after load_dotenv)

app = create_app()


def _resolve_port() -> int:
    return int(os.getenv("PORT", os.getenv("FLASK_RUN_PORT", 5080)))


if __name__ == "__main__":  # pragma: no cover
    app.run(
        debug=app.config.get("DEBUG", False),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_resolve_port(),
        use_reloader=False,
    )
