"""Pytest fixtures for exporter tests."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from dmarc_metrics_contracts import MetricsRow


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def supervisor():
    """Supervisor stand-in handing out one sentinel connection."""
    sup = MagicMock()
    sup.conn = object()
    sup.get_connection = AsyncMock(return_value=sup.conn)
    return sup


@pytest.fixture
def target_day():
    return date(2025, 1, 10)


@pytest.fixture
def sample_row(target_day):
    """Row matching the worked example for 2025-01-10."""
    return MetricsRow(
        day=target_day,
        values={
            "num_total": 8,
            "num_rejected": 5,
            "num_quarantined": 0,
            "num_align_failed": 0,
            "num_dkim_failed": 0,
            "num_spf_failed": 3,
            "num_spf_dkim_failed": 0,
            "num_dkim_permerror": 0,
            "num_spf_permerror": 0,
        },
    )
