"""
Root Typer application for the ``saasbackup`` CLI.

Commands:
    platforms              list registered platforms
    endpoints PLATFORM     show a platform's endpoint catalog
    test PLATFORM          validate credentials with one cheap API call
    run SOURCE_FILE        run a backup job for a Source definition
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from pydantic import ValidationError

from saasbackup.catalog.sources import PlatformConnection, Source
from saasbackup.cli.utils import (
    console,
    err_console,
    fail,
    load_json_file,
    print_dict,
    print_json,
    print_table,
    styled_status,
)
from saasbackup.connectors.registry import default_registry
from saasbackup.core.credentials import JsonFileCredentialResolver
from saasbackup.core.errors import BackupError, ConfigurationError
from saasbackup.core.logging import configure_logging
from saasbackup.core.settings import get_settings
from saasbackup.core.sinks import JsonlRecordSink
from saasbackup.core.watermarks import WatermarkStore
from saasbackup.execution.models import JobStatus
from saasbackup.orchestration.orchestrator import JobOrchestrator

app = typer.Typer(
    name="saasbackup",
    help="saasbackup: back up SaaS platform data to local JSONL files.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("saasbackup-core")
        except PackageNotFoundError:
            from saasbackup import __version__ as v
        typer.echo(f"saasbackup {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override SAASBACKUP_LOG_LEVEL."),
) -> None:
    """saasbackup CLI: inspect connectors and run backup jobs."""
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.json_logs)


# ── Catalog commands ─────────────────────────────────────────────────────


@app.command("platforms")
def platforms(json_out: bool = typer.Option(False, "--json")) -> None:
    """List the platforms a backup can run against."""
    catalog = default_registry().catalog
    rows = [
        {
            "platform": p.platform_type,
            "name": p.name,
            "category": p.category,
            "auth": p.auth_type.value,
            "endpoints": len(p.endpoints),
            "base_url": p.base_url,
        }
        for p in (catalog.platform(t) for t in catalog.platform_types())
    ]
    if json_out:
        print_json(rows)
        return
    print_table(rows, title="Platforms")


@app.command("endpoints")
def endpoints(
    platform: str = typer.Argument(..., help="Platform type, e.g. keap or stripe"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a platform's endpoints, their dependencies and paging options."""
    registry = default_registry()
    try:
        definition = registry.catalog.platform(platform)
    except ConfigurationError as e:
        fail(str(e), error=e)

    if json_out:
        print_json([e.to_descriptor(definition.base_url) for e in definition.endpoints])
        return

    rows = [
        {
            "name": e.name,
            "default": e.default_enabled,
            "incremental": e.supports_incremental,
            "depends_on": list(e.dependencies),
            "paging": e.options.pagination.value,
            "description": e.description,
        }
        for e in registry.catalog.execution_order(platform)
    ]
    print_table(rows, title=f"{definition.name} endpoints (dependency order)")


# ── Connector commands ───────────────────────────────────────────────────


@app.command("test")
def test_connection(
    platform: str = typer.Argument(..., help="Platform type"),
    credentials: Path = typer.Option(..., "--credentials", "-c", help="JSON credentials file"),
    connection_id: str | None = typer.Option(
        None, "--connection", help="Entry to use when the file holds several connections (default: PLATFORM)"
    ),
) -> None:
    """Check that the credentials authenticate against the platform."""
    resolver = JsonFileCredentialResolver(credentials)
    try:
        creds = resolver.get_credentials(connection_id or platform)
        with default_registry().create(platform, creds) as connector:
            connector.test()
    except BackupError as e:
        fail(str(e), error=e)
    console.print(f"[green]✓[/green] {platform}: credentials accepted")


# ── Job commands ─────────────────────────────────────────────────────────


@app.command("run")
def run(
    source_file: Path = typer.Argument(..., help="Source definition (JSON)"),
    credentials: Path = typer.Option(..., "--credentials", "-c", help="JSON credentials file"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Export directory (default: data dir/exports)"),
    watermarks: Path | None = typer.Option(
        None, "--watermarks", help="SQLite watermark database (default: data dir/watermarks.db)"
    ),
    connection_file: Path | None = typer.Option(None, "--connection", help="PlatformConnection definition (JSON)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one backup job for a Source and report the per-endpoint outcome."""
    settings = get_settings()
    raw = load_json_file(source_file, what="source file")
    try:
        source = Source.model_validate(raw)
        connection = (
            PlatformConnection.model_validate(load_json_file(connection_file, what="connection file"))
            if connection_file
            else None
        )
    except ValidationError as e:
        fail(f"Invalid definition in {source_file}", error=e)

    output_dir = output or settings.data_dir / "exports"
    wm_path = watermarks or settings.data_dir / "watermarks.db"
    wm_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(wm_path)
    try:
        orchestrator = JobOrchestrator(
            credentials=JsonFileCredentialResolver(credentials),
            watermarks=WatermarkStore(conn),
            sink=JsonlRecordSink(output_dir),
            settings=settings,
        )
        result = orchestrator.run_job(source, connection=connection)
    finally:
        conn.close()

    if json_out:
        print_json(result)
    else:
        print_dict(
            {
                "job_id": result.job_id,
                "status": styled_status(result.status.value),
                "records": result.progress.records_processed,
                "bytes": result.progress.data_size_bytes,
                "percent_complete": result.progress.percent_complete,
                "output": output_dir / result.job_id,
            },
            title=f"Backup of {source.name}",
        )
        print_table(
            [
                {
                    "endpoint": name,
                    "status": styled_status(r.status.value),
                    "records": r.records,
                    "attempts": r.attempts,
                    "detail": r.error or r.skip_reason or "",
                }
                for name, r in result.endpoint_results.items()
            ],
            title="Endpoints",
        )
        if result.error_message:
            err_console.print(f"[red]{result.error_message}[/red]")

    if result.status is JobStatus.FAILED:
        raise typer.Exit(code=1)
