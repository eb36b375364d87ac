"""Tests for structured logging setup."""

import json
import logging

import pytest

from dmarc_metrics_common import configure_logging, get_logger

pytestmark = pytest.mark.unit


class TestConfigureLogging:
    """configure_logging sets levels and renderers."""

    def test_sets_root_level(self):
        configure_logging(level="WARNING", fmt="console")

        assert logging.getLogger().level == logging.WARNING

    def test_json_renderer_emits_event_and_context(self, capsys):
        configure_logging(level="INFO", fmt="json")
        logger = get_logger("test_json")

        logger.info("cache_refreshed", date="2025-01-10", found=True)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "cache_refreshed"
        assert payload["date"] == "2025-01-10"
        assert payload["found"] is True
        assert payload["level"] == "info"

    def test_level_filters_lower_events(self, capsys):
        configure_logging(level="ERROR", fmt="json")
        logger = get_logger("test_filter")

        logger.info("should_not_appear")

        assert "should_not_appear" not in capsys.readouterr().err
