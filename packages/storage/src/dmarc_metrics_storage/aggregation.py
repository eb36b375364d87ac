"""Daily aggregation of report records into the ``metric`` table.

The aggregator is a batch producer: it computes one row per day and
upserts it, so re-running it for the same day overwrites rather than
duplicates.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

import asyncpg

from dmarc_metrics_common import (
    MissingSchemaError,
    QueryExecutionError,
    TransientDatabaseError,
    get_logger,
)
from dmarc_metrics_contracts import CompiledAggregateQuery, MetricsRow

from dmarc_metrics_storage.connection import TRANSIENT_ERRORS, parse_row_count
from dmarc_metrics_storage.query_compiler import METRIC_TABLE, get_aggregate_query

logger = get_logger(__name__)


async def check_metric_table(conn: Any, table: str = METRIC_TABLE) -> None:
    """Verify that the metrics table exists.

    Raises:
        MissingSchemaError: If the table is absent
        TransientDatabaseError: If the database cannot be reached
    """
    try:
        exists = await conn.fetchval("SELECT to_regclass($1) IS NOT NULL", table)
    except TRANSIENT_ERRORS as e:
        raise TransientDatabaseError(f"Lost database connection: {e}") from e

    if not exists:
        logger.error("metric_table_missing", table=table)
        raise MissingSchemaError(
            f"table '{table}' not found, please run the DMARC report parser at least once"
        )


async def fetch_metrics_row(conn: Any, day: date, table: str = METRIC_TABLE) -> Optional[MetricsRow]:
    """Fetch the metrics row for exactly ``day``.

    Returns:
        The row, or None if ``day`` has not been aggregated yet
    """
    record = await conn.fetchrow(f"SELECT * FROM {table} WHERE date = $1", day)
    if record is None:
        return None
    return MetricsRow.from_record(record)


class AggregationRunner:
    """Executes the compiled aggregation statement for one day at a time.

    Example:
        >>> conn = await open_connection()
        >>> rows = await AggregationRunner(conn).aggregate(date(2025, 1, 10))
    """

    def __init__(self, conn: Any, query: Optional[CompiledAggregateQuery] = None):
        """Initialize runner.

        Args:
            conn: asyncpg connection
            query: Compiled statement (default: the built-in catalog)
        """
        self.conn = conn
        self.query = query or get_aggregate_query()

    async def aggregate(self, target_date: date) -> int:
        """Compute and upsert the metrics row for ``target_date``.

        The statement runs in its own transaction: either the full row is
        written or nothing is.

        Returns:
            Number of rows written (1)

        Raises:
            MissingSchemaError: If the metric table does not exist
            QueryExecutionError: If the statement fails (rolled back)
            TransientDatabaseError: If the connection drops
        """
        await check_metric_table(self.conn)

        params = self.query.bind(target_date)
        logger.info(
            "aggregation_started",
            date=target_date.isoformat(),
            fields=len(self.query.field_names),
            parameters=len(params),
        )

        try:
            async with self.conn.transaction():
                status = await self.conn.execute(self.query.sql, *params)
        except TRANSIENT_ERRORS as e:
            logger.error("aggregation_connection_lost", date=target_date.isoformat(), error=str(e))
            raise TransientDatabaseError(f"Lost database connection during aggregation: {e}") from e
        except asyncpg.PostgresError as e:
            logger.error("aggregation_failed", date=target_date.isoformat(), error=str(e))
            raise QueryExecutionError(f"error running aggregation query for {target_date}: {e}") from e

        rows = parse_row_count(status)
        logger.info("aggregation_completed", date=target_date.isoformat(), rows=rows)
        return rows
