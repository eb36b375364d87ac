"""Shared fixtures for integration tests.

Runs the aggregation against a real PostgreSQL test database. The report
tables normally come from the DMARC report parser; a minimal copy of its
schema is created here.

Skips when no server is reachable.
"""

import os
from datetime import date, datetime, time, timedelta

import asyncpg
import pytest
import pytest_asyncio

from dmarc_metrics_storage import DATABASE_ERRORS, DatabaseConfig

# Test database name - NEVER use production database for tests
TEST_DATABASE_NAME = os.environ.get("TEST_DATABASE_NAME", "dmarc_metrics_test")
PRODUCTION_DATABASE_NAME = "dmarc"

SCHEMA = """
DROP TABLE IF EXISTS rptrecord, report, metric;

CREATE TABLE report (
    serial SERIAL PRIMARY KEY,
    mindate TIMESTAMP NOT NULL,
    maxdate TIMESTAMP NOT NULL,
    domain VARCHAR(255) NOT NULL,
    org VARCHAR(255) NOT NULL,
    reportid VARCHAR(255) NOT NULL
);

CREATE TABLE rptrecord (
    serial INTEGER NOT NULL REFERENCES report (serial),
    ip VARCHAR(39),
    rcount INTEGER NOT NULL,
    disposition VARCHAR(10),
    reason VARCHAR(255),
    dkimdomain VARCHAR(255),
    dkimresult VARCHAR(9),
    spfdomain VARCHAR(255),
    spfresult VARCHAR(9),
    spf_align VARCHAR(7) NOT NULL,
    dkim_align VARCHAR(7) NOT NULL,
    identifier_hfrom VARCHAR(255)
);

CREATE TABLE metric (
    date DATE PRIMARY KEY,
    num_total INTEGER,
    num_rejected INTEGER,
    num_quarantined INTEGER,
    num_align_failed INTEGER,
    num_dkim_failed INTEGER,
    num_spf_failed INTEGER,
    num_spf_dkim_failed INTEGER,
    num_dkim_permerror INTEGER,
    num_spf_permerror INTEGER
);
"""


class ProductionDatabaseError(Exception):
    """Raised when test attempts to modify production database."""

    pass


def _verify_not_production(database_name: str) -> None:
    """Safety check: refuse to run destructive operations on production DB."""
    if database_name == PRODUCTION_DATABASE_NAME:
        raise ProductionDatabaseError(
            f"REFUSING to run test fixture against production database "
            f"'{PRODUCTION_DATABASE_NAME}'!\n"
            f"Tests must use '{TEST_DATABASE_NAME}' or another test database.\n"
            f"Set TEST_DATABASE_NAME environment variable to override."
        )


@pytest.fixture
def db_config():
    _verify_not_production(TEST_DATABASE_NAME)
    return DatabaseConfig(database=TEST_DATABASE_NAME, connect_timeout=3.0)


@pytest_asyncio.fixture(scope="function")
async def db_conn(db_config):
    """Connection to the test database with a freshly created schema.

    This fixture:
    - Skips the test when PostgreSQL is unreachable
    - Drops and recreates report, rptrecord and metric
    - REFUSES to touch the production database
    """
    try:
        conn = await asyncpg.connect(
            dsn=db_config.get_dsn(), timeout=db_config.connect_timeout
        )
    except DATABASE_ERRORS as e:
        pytest.skip(f"PostgreSQL test database not available: {e}")

    try:
        _verify_not_production(await conn.fetchval("SELECT current_database()"))
        await conn.execute(SCHEMA)
        yield conn
    finally:
        await conn.close()


async def insert_report(conn, mindate: date, records: list[dict]) -> int:
    """Insert one report spanning ``mindate`` and its records.

    Each record dict needs ``rcount``; the remaining columns default to an
    unremarkable passing message.
    """
    start = datetime.combine(mindate, time())
    serial = await conn.fetchval(
        "INSERT INTO report (mindate, maxdate, domain, org, reportid) "
        "VALUES ($1, $2, 'example.org', 'receiver.example', $3) RETURNING serial",
        start,
        start + timedelta(days=1) - timedelta(seconds=1),
        f"report-{mindate.isoformat()}-{len(records)}",
    )
    for record in records:
        values = {
            "disposition": "none",
            "spfresult": "pass",
            "dkimresult": "pass",
            "spf_align": "pass",
            "dkim_align": "pass",
            **record,
        }
        await conn.execute(
            "INSERT INTO rptrecord (serial, rcount, disposition, spfresult, dkimresult, "
            "spf_align, dkim_align) VALUES ($1, $2, $3, $4, $5, $6, $7)",
            serial,
            values["rcount"],
            values["disposition"],
            values["spfresult"],
            values["dkimresult"],
            values["spf_align"],
            values["dkim_align"],
        )
    return serial


@pytest.fixture
def add_report():
    """Factory fixture for seeding reports."""
    return insert_report
