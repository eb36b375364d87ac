"""Pytest fixtures for CLI tests."""

import pytest
from typer.testing import CliRunner

from dmarc_metrics_common import get_settings


@pytest.fixture
def cli_runner():
    """Typer CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so environment changes take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
