"""Prometheus metrics for the exporter process itself.

Provides exporter-specific observability alongside the DMARC gauges:

1. Scrapes
   - Scrape duration histogram
   - Scrape counts by status (ok, timeout, error)

2. Cache
   - Refresh counts by outcome (found, missing, failed)

3. Database
   - Connections established (first connect and reconnects)
"""

from prometheus_client import Counter, Histogram

# ==============================================================================
# Scrape Metrics
# ==============================================================================

SCRAPE_DURATION = Histogram(
    "dmarc_exporter_scrape_duration_seconds",
    "Time spent answering one /metrics request",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 30.0],
)

SCRAPES_TOTAL = Counter(
    "dmarc_exporter_scrapes_total",
    "Total /metrics requests by status",
    ["status"],
)

# ==============================================================================
# Cache Metrics
# ==============================================================================

CACHE_REFRESHES = Counter(
    "dmarc_exporter_cache_refreshes_total",
    "Metrics row refreshes by outcome (found, missing, failed)",
    ["outcome"],
)

# ==============================================================================
# Database Metrics
# ==============================================================================

DB_CONNECTS = Counter(
    "dmarc_exporter_database_connects_total",
    "Database connections established, including reconnects",
)
