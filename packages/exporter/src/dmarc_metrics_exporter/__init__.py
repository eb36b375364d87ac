"""dmarc-metrics exporter - Prometheus exposition of the daily metrics row.

Provides:
- MetricsCache: TTL cache of the metric row per date
- DmarcFieldCollector: one gauge per catalog field
- ExporterServer: /metrics and /health over HTTP
"""

from dmarc_metrics_exporter.cache import DEFAULT_TTL_SECONDS, CacheEntry, MetricsCache
from dmarc_metrics_exporter.collector import DmarcFieldCollector
from dmarc_metrics_exporter.server import (
    METRICS_PATH,
    ExporterServer,
    build_exporter,
    days_before_today,
    run_exporter,
)

__version__ = "1.0.0"

__all__ = [
    "CacheEntry",
    "DEFAULT_TTL_SECONDS",
    "DmarcFieldCollector",
    "ExporterServer",
    "METRICS_PATH",
    "MetricsCache",
    "build_exporter",
    "days_before_today",
    "run_exporter",
]
