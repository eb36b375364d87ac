"""dmarc-metrics common utilities.

Provides:
- Error taxonomy shared by every package
- Structured logging (structlog)
- Settings (pydantic-settings)
"""

from dmarc_metrics_common.config import Settings, get_settings
from dmarc_metrics_common.errors import (
    ConfigurationError,
    DmarcMetricsError,
    InputValidationError,
    MissingSchemaError,
    QueryExecutionError,
    StorageError,
    TransientDatabaseError,
)
from dmarc_metrics_common.logging_config import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "DmarcMetricsError",
    "InputValidationError",
    "MissingSchemaError",
    "QueryExecutionError",
    "Settings",
    "StorageError",
    "TransientDatabaseError",
    "configure_logging",
    "get_logger",
    "get_settings",
]
