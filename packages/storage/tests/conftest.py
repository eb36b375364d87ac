"""Pytest fixtures for storage unit tests.

asyncpg connections are replaced with AsyncMock objects. ``transaction()``
is synchronous in asyncpg and returns an async context manager, so it is
mocked separately.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest


def make_mock_conn():
    """Create a mock asyncpg connection with a working ``transaction()``."""
    conn = AsyncMock()
    conn.is_closed = MagicMock(return_value=False)

    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=tx)
    tx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx)
    conn.tx = tx
    return conn


@pytest.fixture
def mock_conn():
    """Mock connection whose metric table exists."""
    conn = make_mock_conn()
    conn.fetchval = AsyncMock(return_value=True)
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    return conn


@pytest.fixture
def conn_factory():
    """Factory for additional mock connections."""
    return make_mock_conn
