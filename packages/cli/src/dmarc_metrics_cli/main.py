"""dmarc-metrics CLI - Main entry point.

Provides the ``dmarc-metrics`` command-line interface.

Usage:
    dmarc-metrics aggregate --days-before 1
    dmarc-metrics aggregate --date 2025-01-10
    dmarc-metrics purge --days-before 90
    dmarc-metrics export --days-before 1
    dmarc-metrics fields

Database connection settings come from POSTGRES_* environment variables;
everything else from the environment or a ``.env`` file.
"""

import asyncio
from datetime import date
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError

from dmarc_metrics_common import (
    ConfigurationError,
    DmarcMetricsError,
    InputValidationError,
    configure_logging,
    get_logger,
    get_settings,
)
from dmarc_metrics_storage import (
    FIELD_CATALOG,
    AggregationRunner,
    DatabaseConfig,
    PurgeResult,
    open_connection,
    purge_reports,
)

from dmarc_metrics_cli._shared import date_before, parse_days_before, resolve_target_date

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Root Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="dmarc-metrics",
    help="Aggregate daily DMARC report statistics and export them to Prometheus.",
    add_completion=False,
)

DateOption = typer.Option(None, "--date", "-t", help="Target date in format YYYY-MM-DD")
DaysBeforeOption = typer.Option(
    None, "--days-before", "-b", help="Target today minus N days (1 = yesterday)"
)


def _fail(error: Exception, command: Optional[str] = None) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    if isinstance(error, InputValidationError) and command:
        typer.echo(f"Try 'dmarc-metrics {command} --help' for usage.", err=True)
    raise typer.Exit(1)


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Load settings and configure logging before any command runs."""
    try:
        settings = get_settings()
    except ValidationError as e:
        _fail(ConfigurationError(f"Invalid configuration: {e}"))
    configure_logging(level=log_level or settings.log_level, fmt=settings.log_format)


async def _aggregate(target_date: date, config: DatabaseConfig) -> int:
    conn = await open_connection(config)
    try:
        return await AggregationRunner(conn).aggregate(target_date)
    finally:
        await conn.close()


async def _purge(before: date, config: DatabaseConfig) -> PurgeResult:
    conn = await open_connection(config)
    try:
        return await purge_reports(conn, before)
    finally:
        await conn.close()


@app.command()
def aggregate(
    date_value: Optional[str] = DateOption,
    days_before: Optional[str] = DaysBeforeOption,
):
    """Compute the metric row for one day and upsert it.

    Examples:

        dmarc-metrics aggregate --days-before 1

        dmarc-metrics aggregate --date 2025-01-10
    """
    try:
        target = resolve_target_date(date_value, days_before)
        rows = asyncio.run(_aggregate(target, DatabaseConfig()))
    except DmarcMetricsError as e:
        _fail(e, "aggregate")

    typer.echo(f"Aggregated {target.isoformat()}: {rows} row(s) written")


@app.command()
def purge(
    date_value: Optional[str] = DateOption,
    days_before: Optional[str] = DaysBeforeOption,
):
    """Delete all reports (and their records) older than the target date.

    Examples:

        dmarc-metrics purge --days-before 90
    """
    try:
        before = resolve_target_date(date_value, days_before)
        result = asyncio.run(_purge(before, DatabaseConfig()))
    except DmarcMetricsError as e:
        _fail(e, "purge")

    typer.echo(
        f"Purged reports before {before.isoformat()}: "
        f"{result.reports_deleted} report(s), {result.records_deleted} record(s)"
    )


@app.command()
def export(
    days_before: str = typer.Option(
        ..., "--days-before", "-b", help="Serve the row for today minus N days"
    ),
    port: Optional[int] = typer.Option(None, "--port", help="Override EXPORTER_PORT"),
    host: Optional[str] = typer.Option(None, "--host", help="Override EXPORTER_HOST"),
):
    """Serve the daily metrics on /metrics in Prometheus format.

    Runs until interrupted. Database outages are retried in the background;
    scrapes return stale or absent data meanwhile.

    Examples:

        dmarc-metrics export --days-before 1
    """
    from dmarc_metrics_exporter import run_exporter

    try:
        offset = parse_days_before(days_before)
        date_before(offset)
    except DmarcMetricsError as e:
        _fail(e, "export")

    updates = {}
    if port is not None:
        updates["exporter_port"] = port
    if host is not None:
        updates["exporter_host"] = host
    settings = get_settings().model_copy(update=updates)

    try:
        asyncio.run(run_exporter(offset, settings=settings))
    except KeyboardInterrupt:
        pass
    except DmarcMetricsError as e:
        _fail(e)


@app.command()
def fields():
    """List the metric fields and their descriptions."""
    for field in FIELD_CATALOG:
        typer.echo(f"  {field.name:22} {field.description}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
