"""Compile the field catalog into one batched aggregation statement.

Each field becomes a scalar subquery over the report records of one day.
All subqueries live in a single ``INSERT ... SELECT`` so the whole metrics
row is computed in one round trip::

    INSERT INTO metric (date, num_total, num_rejected, ...)
    SELECT $1::date,
      (SELECT COALESCE(SUM(rr.rcount), 0) ... WHERE r.mindate >= $2::date AND r.mindate < $3::date),
      (SELECT COALESCE(SUM(rr.rcount), 0) ... WHERE ... $4::date ... $5::date AND (rr.disposition = 'reject')),
      ...
    ON CONFLICT (date) DO UPDATE SET num_total = EXCLUDED.num_total, ...

Parameter ``$1`` is the target date; field ``i`` (0-based) owns
``$(2 + 2i)`` and ``$(3 + 2i)``. ``CompiledAggregateQuery.bind`` produces
the matching flattened list.
"""

from functools import lru_cache
from typing import Sequence

from dmarc_metrics_common import ConfigurationError, get_logger
from dmarc_metrics_contracts import CompiledAggregateQuery, DataField

from dmarc_metrics_storage.catalog import FIELD_CATALOG

logger = get_logger(__name__)

METRIC_TABLE = "metric"

# Per-field counting query. {start} and {end} receive positional placeholders.
BASE_COUNT_TEMPLATE = (
    "SELECT COALESCE(SUM(rr.rcount), 0) "
    "FROM rptrecord rr JOIN report r ON r.serial = rr.serial "
    "WHERE r.mindate >= {start} AND r.mindate < {end}"
)


def _validate_catalog(catalog: Sequence[DataField]) -> None:
    if not catalog:
        raise ConfigurationError("Field catalog is empty")

    names = [field.name for field in catalog]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate field names in catalog: {duplicates}")
    if "date" in names:
        raise ConfigurationError("'date' is reserved for the metric table key")

    unfiltered = [field.name for field in catalog if field.predicate is None]
    if len(unfiltered) != 1:
        raise ConfigurationError(
            f"Catalog must have exactly one field without a predicate, found {unfiltered}"
        )


def _render_subquery(template: str, field: DataField, start_param: int) -> str:
    try:
        sql = template.format(start=f"${start_param}::date", end=f"${start_param + 1}::date")
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(f"Malformed count template: {e}") from e

    if field.predicate is not None:
        sql += f" AND ({field.predicate.to_sql('rr')})"
    return f"({sql})"


def compile_aggregate_query(
    catalog: Sequence[DataField] = FIELD_CATALOG,
    template: str = BASE_COUNT_TEMPLATE,
    table: str = METRIC_TABLE,
) -> CompiledAggregateQuery:
    """Build the upsert statement for ``catalog``.

    Args:
        catalog: Ordered fields; column and parameter order follow it
        template: Counting query with ``{start}`` and ``{end}`` placeholders
        table: Target metrics table

    Returns:
        Statement plus the field names in parameter order

    Raises:
        ConfigurationError: If the catalog or template is unusable
    """
    _validate_catalog(catalog)
    if "{start}" not in template or "{end}" not in template:
        raise ConfigurationError("Count template must contain {start} and {end} placeholders")

    names = tuple(field.name for field in catalog)
    subqueries = [
        _render_subquery(template, field, start_param=2 + 2 * i)
        for i, field in enumerate(catalog)
    ]
    updates = ", ".join(f"{name} = EXCLUDED.{name}" for name in names)

    sql = (
        f"INSERT INTO {table} (date, {', '.join(names)})\n"
        f"SELECT $1::date,\n  "
        + ",\n  ".join(subqueries)
        + f"\nON CONFLICT (date) DO UPDATE SET {updates}"
    )

    logger.debug("aggregate_query_compiled", fields=len(names), table=table)
    return CompiledAggregateQuery(sql=sql, field_names=names)


@lru_cache(maxsize=1)
def get_aggregate_query() -> CompiledAggregateQuery:
    """Compiled statement for the built-in catalog, built once per process."""
    return compile_aggregate_query()
