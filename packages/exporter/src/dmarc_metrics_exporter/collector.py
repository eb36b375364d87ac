"""Prometheus collector exposing one gauge per catalog field.

Each scrape samples every field through the MetricsCache and renders the
result. A field without a value is exposed as a gauge family with no
sample, so the monitoring system sees "not measured" rather than zero.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Iterable, Optional, Sequence

from prometheus_client.core import GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from dmarc_metrics_contracts import DataField
from dmarc_metrics_storage import FIELD_CATALOG

from dmarc_metrics_exporter.cache import MetricsCache


class DmarcFieldCollector(Collector):
    """Pull-style gauges for the daily DMARC metrics.

    ``refresh()`` must be awaited before the registry is rendered; the
    exporter server does both in the same event-loop turn.
    """

    def __init__(
        self,
        cache: MetricsCache,
        target_date: Callable[[], date],
        catalog: Sequence[DataField] = FIELD_CATALOG,
    ):
        """Initialize collector.

        Args:
            cache: Metrics row cache
            target_date: Returns the date to expose, evaluated per scrape
            catalog: Fields to expose, one gauge each
        """
        self.cache = cache
        self.target_date = target_date
        self.catalog = tuple(catalog)
        self._values: dict[str, Optional[int]] = {}

    async def refresh(self) -> dict[str, Optional[int]]:
        """Sample every field for the current target date.

        The row is read once per scrape; every gauge comes from it.
        """
        row = await self.cache.get_row(self.target_date())
        self._values = {
            field.name: row.get(field.name) if row is not None else None
            for field in self.catalog
        }
        return dict(self._values)

    def describe(self) -> Iterable[Metric]:
        for field in self.catalog:
            yield GaugeMetricFamily(field.name, field.description)

    def collect(self) -> Iterable[Metric]:
        for field in self.catalog:
            gauge = GaugeMetricFamily(field.name, field.description)
            value = self._values.get(field.name)
            if value is not None:
                gauge.add_metric([], value)
            yield gauge
