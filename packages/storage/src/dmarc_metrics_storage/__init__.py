"""dmarc-metrics storage - PostgreSQL access layer.

This package provides:
- Connection configuration and the reconnecting ConnectionSupervisor
- FIELD_CATALOG (the named daily metrics)
- Query compiler (catalog -> one batched upsert statement)
- AggregationRunner (writes one metric row per day)
- Metric row lookup and schema check
- Retention purge

Exclusive DB ownership - no SQL outside this package.
"""

from dmarc_metrics_storage.aggregation import (
    AggregationRunner,
    check_metric_table,
    fetch_metrics_row,
)
from dmarc_metrics_storage.catalog import FIELD_CATALOG, FIELD_NAMES, get_field
from dmarc_metrics_storage.connection import (
    DATABASE_ERRORS,
    TRANSIENT_ERRORS,
    ConnectionState,
    ConnectionSupervisor,
    DatabaseConfig,
    open_connection,
)
from dmarc_metrics_storage.purge import PurgeResult, purge_reports
from dmarc_metrics_storage.query_compiler import (
    BASE_COUNT_TEMPLATE,
    METRIC_TABLE,
    compile_aggregate_query,
    get_aggregate_query,
)

__all__ = [
    "AggregationRunner",
    "BASE_COUNT_TEMPLATE",
    "ConnectionState",
    "ConnectionSupervisor",
    "DATABASE_ERRORS",
    "DatabaseConfig",
    "FIELD_CATALOG",
    "FIELD_NAMES",
    "METRIC_TABLE",
    "PurgeResult",
    "TRANSIENT_ERRORS",
    "check_metric_table",
    "compile_aggregate_query",
    "fetch_metrics_row",
    "get_aggregate_query",
    "get_field",
    "open_connection",
    "purge_reports",
]
