"""edu_app package – application factory and blueprint registration."""

from __future__ import annotations

import json
import os
import time
from time import perf_counter

import click
from flask import Flask, g, request
from sqlalchemy import event

from config import resolve_config
from .blueprints import BLUEPRINTS
from .extensions import db, migrate
from .logging_config import configure_logging, assign_request_id
from .metrics import record_request
from .models.generation import JOB_TYPES
from .services.supervisors import start_supervisors


def create_app(config_name: str | None = None) -> Flask:
    """Application factory used by both CLI and runtime servers."""

    app = Flask(__name__)
    _configure_app(app, config_name)
    configure_logging(app)
    _register_extensions(app)
    _register_blueprints(app)
    _register_shellcontext(app)
    _register_cli(app)
    _register_bootstrap(app)
    _register_request_hooks(app)
    start_supervisors(app)

    return app


def _configure_app(app: Flask, config_name: str | None) -> None:
    env_name = config_name or os.getenv("FLASK_CONFIG")
    config_obj = resolve_config(env_name)
    app.config.from_object(config_obj)


def _register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    _configure_sqlite_engine(app)


def _register_blueprints(app: Flask) -> None:
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)


def _register_shellcontext(app: Flask) -> None:
    from . import models

    @app.shell_context_processor
    def shell_context():
        return {
            "db": db,
            "Subject": models.Subject,
            "Chapter": models.Chapter,
            "Activity": models.Activity,
            "BulkGenerationProgress": models.BulkGenerationProgress,
            "FailedGeneration": models.FailedGeneration,
        }


def _register_bootstrap(app: Flask) -> None:
    @app.before_request
    def ensure_schema():
        if app.config.get("_SCHEMA_READY"):
            return
        try:
            _ensure_schema(app)
            app.config["_SCHEMA_READY"] = True
        except Exception as exc:  # pragma: no cover - defensive logging
            app.logger.debug("Schema bootstrap skipped: %s", exc)
            app.config["_SCHEMA_READY"] = False


def _register_request_hooks(app: Flask) -> None:
    @app.before_request
    def start_request():
        assign_request_id()
        g.request_started_at = perf_counter()

    @app.after_request
    def finalize(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        started = getattr(g, "request_started_at", None)
        latency = perf_counter() - started if started else 0.0
        endpoint = request.endpoint or request.path
        record_request(request.method, endpoint, response.status_code, latency)
        return response


def _configure_sqlite_engine(app: Flask) -> None:
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if not uri.startswith("sqlite"):
        return
    busy_timeout_ms = int(app.config.get("SQLITE_BUSY_TIMEOUT_MS", 15000))

    with app.app_context():
        engine = db.engine

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms};")
                cursor.execute("PRAGMA synchronous=NORMAL;")
            finally:
                cursor.close()


def _ensure_schema(app: Flask) -> None:
    with app.app_context():
        db.create_all()


def _register_cli(app: Flask) -> None:
    job_type_choice = click.Choice(JOB_TYPES)

    @app.cli.group("generation")
    def generation_group():
        """Bulk lesson/quiz generation commands."""

    @generation_group.command("start")
    @click.argument("job_type", type=job_type_choice)
    @click.option(
        "--background",
        is_flag=True,
        default=False,
        help="Launch in a background thread instead of running in the foreground.",
    )
    def start_command(job_type: str, background: bool) -> None:
        """Run a generation job until it completes or is stopped."""

        from .services import generation_runner

        _ensure_schema(app)
        try:
            summary = generation_runner.start(job_type, sync=not background)
        except generation_runner.JobAlreadyRunning as exc:
            raise click.ClickException(str(exc)) from exc
        if summary is None:
            click.echo(f"Launched {job_type} generation in background.")
            return
        state = "stopped" if summary["stopped"] else "finished"
        click.echo(
            f"{job_type} generation {state}: {summary['generated']} generated, "
            f"{summary['skipped']} skipped, {summary['failed']} failed."
        )

    @generation_group.command("stop")
    @click.argument("job_type", type=job_type_choice)
    def stop_command(job_type: str) -> None:
        """Ask a running job to stop before its next unit of work."""

        from .services import generation_runner

        _ensure_schema(app)
        generation_runner.stop(job_type)
        click.echo(f"Stop requested for {job_type} generation.")

    @generation_group.command("reset")
    @click.argument("job_type", type=job_type_choice)
    def reset_command(job_type: str) -> None:
        """Clear the checkpoint of a job that is not running."""

        from .services import checkpoint_service

        _ensure_schema(app)
        if checkpoint_service.is_running(job_type):
            raise click.ClickException(f"{job_type} generation is running; stop it first.")
        checkpoint_service.reset(job_type)
        click.echo(f"Reset {job_type} checkpoint.")

    @generation_group.command("status")
    @click.option("--json", "as_json", is_flag=True, default=False, help="Print raw JSON.")
    def status_command(as_json: bool) -> None:
        """Show the checkpoint of both jobs and the pending failure count."""

        from .services import checkpoint_service, failure_ledger

        _ensure_schema(app)
        jobs = [checkpoint_service.describe_progress(job) for job in JOB_TYPES]
        pending = len(failure_ledger.list_failures(pending_only=True))
        if as_json:
            click.echo(json.dumps({"jobs": jobs, "pending_failures": pending}, default=str))
            return
        for job in jobs:
            state = "running" if job["is_running"] else "idle"
            click.echo(
                f"{job['generation_type']}: {state}, level {job['current_level'] or '-'} "
                f"({job['current_level_index']}/{job['display_total_levels']}, "
                f"{job['progress_percent']}%)"
            )
        click.echo(f"Pending failures: {pending}")

    @generation_group.command("retry-failures")
    @click.option("--id", "failure_id", type=int, help="Retry a single failure record.")
    def retry_failures_command(failure_id: int | None) -> None:
        """Re-attempt failed generation units."""

        from .services import failure_ledger, retry_service

        _ensure_schema(app)
        if failure_id is not None:
            record = failure_ledger.get_failure(failure_id)
            if record is None:
                raise click.ClickException(f"Failure {failure_id} not found.")
            ok = retry_service.retry_one(record)
            click.echo(f"Failure {failure_id}: {'resolved' if ok else 'still failing'}.")
            return
        summary = retry_service.retry_all()
        click.echo(
            f"Retried {summary['attempted']} failure(s): "
            f"{summary['succeeded']} succeeded, {summary['failed']} failed."
        )

    @generation_group.command("supervise")
    @click.option("--once", is_flag=True, default=False, help="Run each supervisor a single time.")
    def supervise_command(once: bool) -> None:
        """Run the stall monitor and auto-restart supervisor in the foreground."""

        from .services import supervisors

        _ensure_schema(app)
        threads = supervisors.build_supervisors(app)
        if once:
            for thread in threads:
                thread.run_once()
            click.echo("Supervisors ran once.")
            return
        click.echo("Supervising generation jobs; press Ctrl+C to stop.")
        for thread in threads:
            thread.start()
        try:
            while any(thread.is_alive() for thread in threads):
                time.sleep(1)
        except KeyboardInterrupt:  # pragma: no cover - interactive
            for thread in threads:
                thread.stop()
