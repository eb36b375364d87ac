"""dmarc-metrics contracts - pure Pydantic schemas.

This package contains ONLY value types with no I/O.
Dependencies: pydantic only (no logging, no DB drivers).
"""

from dmarc_metrics_contracts.models import (
    COLUMN_VALUES,
    AllOf,
    CompiledAggregateQuery,
    DataField,
    DateWindow,
    Equals,
    MetricsRow,
    NotEquals,
    Predicate,
    RecordColumn,
)

__version__ = "1.0.0"

__all__ = [
    "COLUMN_VALUES",
    "AllOf",
    "CompiledAggregateQuery",
    "DataField",
    "DateWindow",
    "Equals",
    "MetricsRow",
    "NotEquals",
    "Predicate",
    "RecordColumn",
]
