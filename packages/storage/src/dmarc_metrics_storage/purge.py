"""Retention purge: delete reports older than a cut-off date.

Records are deleted before their reports; the reverse order would orphan
the records and leave nothing for the subquery to match.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

import asyncpg

from dmarc_metrics_common import QueryExecutionError, TransientDatabaseError, get_logger

from dmarc_metrics_storage.connection import TRANSIENT_ERRORS, parse_row_count

logger = get_logger(__name__)

DELETE_RECORDS = "DELETE FROM rptrecord WHERE serial IN (SELECT serial FROM report WHERE mindate < $1::date)"
DELETE_REPORTS = "DELETE FROM report WHERE mindate < $1::date"


@dataclass(frozen=True)
class PurgeResult:
    """Rows removed by one purge run."""

    records_deleted: int
    reports_deleted: int


async def purge_reports(conn: Any, before: date) -> PurgeResult:
    """Delete every report (and its records) with ``mindate < before``.

    Both deletes share one transaction.

    Raises:
        QueryExecutionError: If either statement fails (rolled back)
        TransientDatabaseError: If the connection drops
    """
    try:
        async with conn.transaction():
            records_status = await conn.execute(DELETE_RECORDS, before)
            reports_status = await conn.execute(DELETE_REPORTS, before)
    except TRANSIENT_ERRORS as e:
        raise TransientDatabaseError(f"Lost database connection during purge: {e}") from e
    except asyncpg.PostgresError as e:
        logger.error("purge_failed", before=before.isoformat(), error=str(e))
        raise QueryExecutionError(f"error running purge for reports before {before}: {e}") from e

    result = PurgeResult(
        records_deleted=parse_row_count(records_status),
        reports_deleted=parse_row_count(reports_status),
    )
    logger.info(
        "purge_completed",
        before=before.isoformat(),
        records_deleted=result.records_deleted,
        reports_deleted=result.reports_deleted,
    )
    return result
