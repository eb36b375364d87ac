"""Tests for AggregationRunner, the schema check and row lookup.

Tests cover:
- Statement executed once, inside a transaction, with 1 + 2N parameters
- Missing metric table reported as MissingSchemaError before any write
- SQL errors rolled back and surfaced as QueryExecutionError
- Connection drops surfaced as TransientDatabaseError
- fetch_metrics_row binds the date and maps NULL/absent rows
"""

from datetime import date
from unittest.mock import AsyncMock

import asyncpg
import pytest

from dmarc_metrics_common import (
    MissingSchemaError,
    QueryExecutionError,
    TransientDatabaseError,
)
from dmarc_metrics_storage import (
    FIELD_CATALOG,
    AggregationRunner,
    check_metric_table,
    fetch_metrics_row,
    get_aggregate_query,
)

pytestmark = pytest.mark.unit

TARGET = date(2025, 1, 10)


class TestCheckMetricTable:
    """Tests for check_metric_table()."""

    async def test_existing_table_passes(self, mock_conn):
        await check_metric_table(mock_conn)

        sql, table = mock_conn.fetchval.call_args[0]
        assert "to_regclass" in sql
        assert table == "metric"

    async def test_missing_table_raises(self, mock_conn):
        mock_conn.fetchval = AsyncMock(return_value=False)

        with pytest.raises(MissingSchemaError, match="report parser"):
            await check_metric_table(mock_conn)

    async def test_connection_error_is_transient(self, mock_conn):
        mock_conn.fetchval = AsyncMock(side_effect=ConnectionResetError("reset"))

        with pytest.raises(TransientDatabaseError):
            await check_metric_table(mock_conn)


class TestAggregate:
    """Tests for AggregationRunner.aggregate()."""

    async def test_returns_rows_written(self, mock_conn):
        rows = await AggregationRunner(mock_conn).aggregate(TARGET)

        assert rows == 1

    async def test_executes_compiled_statement_with_flat_params(self, mock_conn):
        await AggregationRunner(mock_conn).aggregate(TARGET)

        mock_conn.execute.assert_awaited_once()
        sql, *params = mock_conn.execute.call_args[0]
        assert sql == get_aggregate_query().sql
        assert len(params) == 1 + 2 * len(FIELD_CATALOG)
        assert params[0] == TARGET
        assert params[1::2] == [TARGET] * len(FIELD_CATALOG)
        assert params[2::2] == [date(2025, 1, 11)] * len(FIELD_CATALOG)

    async def test_runs_inside_transaction(self, mock_conn):
        await AggregationRunner(mock_conn).aggregate(TARGET)

        mock_conn.transaction.assert_called_once()
        mock_conn.tx.__aenter__.assert_awaited_once()
        mock_conn.tx.__aexit__.assert_awaited_once()

    async def test_missing_table_prevents_write(self, mock_conn):
        mock_conn.fetchval = AsyncMock(return_value=False)

        with pytest.raises(MissingSchemaError):
            await AggregationRunner(mock_conn).aggregate(TARGET)

        mock_conn.execute.assert_not_awaited()

    async def test_sql_error_rolls_back_and_raises(self, mock_conn):
        mock_conn.execute = AsyncMock(
            side_effect=asyncpg.UniqueViolationError("duplicate key value")
        )

        with pytest.raises(QueryExecutionError, match="duplicate key value"):
            await AggregationRunner(mock_conn).aggregate(TARGET)

        # The transaction context saw the exception, which makes asyncpg roll back
        exc_type = mock_conn.tx.__aexit__.call_args[0][0]
        assert exc_type is asyncpg.UniqueViolationError

    async def test_connection_drop_is_transient(self, mock_conn):
        mock_conn.execute = AsyncMock(
            side_effect=asyncpg.ConnectionDoesNotExistError("connection was closed")
        )

        with pytest.raises(TransientDatabaseError):
            await AggregationRunner(mock_conn).aggregate(TARGET)

    async def test_custom_query(self, mock_conn):
        query = get_aggregate_query().model_copy(update={"sql": "INSERT INTO x SELECT 1"})

        await AggregationRunner(mock_conn, query=query).aggregate(TARGET)

        assert mock_conn.execute.call_args[0][0] == "INSERT INTO x SELECT 1"

    async def test_idempotent_calls_issue_identical_statements(self, mock_conn):
        """Re-running a day sends the same upsert, so the row is overwritten."""
        runner = AggregationRunner(mock_conn)

        await runner.aggregate(TARGET)
        await runner.aggregate(TARGET)

        first, second = mock_conn.execute.call_args_list
        assert first == second
        assert "ON CONFLICT (date) DO UPDATE" in first[0][0]


class TestFetchMetricsRow:
    """Tests for fetch_metrics_row()."""

    async def test_binds_date_parameter(self, mock_conn):
        mock_conn.fetchrow = AsyncMock(return_value=None)

        await fetch_metrics_row(mock_conn, TARGET)

        sql, day = mock_conn.fetchrow.call_args[0]
        assert sql == "SELECT * FROM metric WHERE date = $1"
        assert day == TARGET

    async def test_missing_row_returns_none(self, mock_conn):
        mock_conn.fetchrow = AsyncMock(return_value=None)

        assert await fetch_metrics_row(mock_conn, TARGET) is None

    async def test_row_mapped(self, mock_conn):
        mock_conn.fetchrow = AsyncMock(
            return_value={"date": TARGET, "num_total": 8, "num_rejected": 5}
        )

        row = await fetch_metrics_row(mock_conn, TARGET)

        assert row.day == TARGET
        assert row.get("num_total") == 8
        assert row.get("num_spf_failed") is None
