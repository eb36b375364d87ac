"""Custom error types for the dmarc-metrics system.

All errors follow the "fail fast" principle with explicit messages.
A missing metrics row is not an error: it is represented as ``None``.
"""


class DmarcMetricsError(Exception):
    """Base exception for all dmarc-metrics errors."""

    pass


class ConfigurationError(DmarcMetricsError):
    """Missing or unparseable settings, or an unusable field catalog."""

    pass


class MissingSchemaError(ConfigurationError):
    """A table required by the aggregator does not exist.

    The report parser creates the schema; the operator has to run it at
    least once before aggregation can work.
    """

    pass


class InputValidationError(DmarcMetricsError):
    """Malformed command-line input (bad date, non-numeric offset)."""

    pass


class StorageError(DmarcMetricsError):
    """Error during database operations."""

    pass


class TransientDatabaseError(StorageError):
    """Connection dropped, refused, or timed out.

    Recovered by reconnecting; never swallowed without a log line.
    """

    pass


class QueryExecutionError(StorageError):
    """A statement failed (constraint violation, bad SQL).

    The surrounding transaction has been rolled back. Not retried.
    """

    pass
