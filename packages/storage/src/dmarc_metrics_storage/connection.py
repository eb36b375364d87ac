"""Database connection management with reconnection.

Provides:
- Connection configuration
- One-shot connections for batch commands
- ConnectionSupervisor: a single long-lived connection that is probed
  before use and re-established with a fixed retry delay
"""

import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import asyncpg
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_delay,
    stop_never,
    wait_fixed,
)

from dmarc_metrics_common import TransientDatabaseError, get_logger

logger = get_logger(__name__)

DEFAULT_RETRY_INTERVAL = 5.0  # seconds

# Failures that mean "the database is not reachable right now"
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
)

# Anything the driver can raise while connecting or probing
DATABASE_ERRORS: tuple[type[BaseException], ...] = TRANSIENT_ERRORS + (asyncpg.PostgresError,)


def parse_row_count(status: str) -> int:
    """Parse the row count from a command tag such as ``INSERT 0 1``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


# Environment variable and fallback for each connection field
_ENV_DEFAULTS = {
    "host": ("POSTGRES_HOST", "localhost"),
    "port": ("POSTGRES_PORT", "5432"),
    "database": ("POSTGRES_DB", "dmarc"),
    "user": ("POSTGRES_USER", "postgres"),
    "password": ("POSTGRES_PASSWORD", "postgres"),
}


@dataclass
class DatabaseConfig:
    """Where the report database lives.

    Fields left as None are filled from ``POSTGRES_HOST``, ``POSTGRES_PORT``,
    ``POSTGRES_DB``, ``POSTGRES_USER`` and ``POSTGRES_PASSWORD``. The report
    parser and the aggregator share one database, ``dmarc`` unless overridden.
    ``connect_timeout`` bounds one attempt; ``command_timeout`` bounds every
    statement.
    """

    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    connect_timeout: float = 10.0
    command_timeout: float = 60.0

    def __post_init__(self) -> None:
        for attr, (env_var, fallback) in _ENV_DEFAULTS.items():
            if getattr(self, attr) is None:
                setattr(self, attr, os.environ.get(env_var, fallback))
        self.port = int(self.port)

    def get_dsn(self) -> str:
        """``postgresql://`` URL for asyncpg."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


async def open_connection(config: Optional[DatabaseConfig] = None) -> asyncpg.Connection:
    """Open a single connection, failing immediately if the database is down.

    Used by the batch commands, which exit non-zero instead of waiting.

    Raises:
        TransientDatabaseError: If the connection cannot be established
    """
    if config is None:
        config = DatabaseConfig()

    try:
        conn = await asyncpg.connect(
            dsn=config.get_dsn(),
            timeout=config.connect_timeout,
            command_timeout=config.command_timeout,
        )
    except DATABASE_ERRORS as e:
        logger.error(
            "database_connect_failed",
            host=config.host,
            port=config.port,
            database=config.database,
            error=str(e),
        )
        raise TransientDatabaseError(
            f"Cannot connect to database {config.database} at {config.host}:{config.port}: {e}"
        ) from e

    logger.debug("database_connection_established", host=config.host, database=config.database)
    return conn


class ConnectionState(str, Enum):
    """Supervisor state."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ConnectionSupervisor:
    """Owns one database connection and keeps it alive.

    ``get_connection()`` never returns a connection that failed its
    liveness probe. When the probe fails (or no connection exists yet) the
    supervisor reconnects, sleeping ``retry_interval`` seconds between
    attempts. Without ``connect_timeout`` it retries forever.

    Writers wrap their statements in ``conn.transaction()``; the supervisor
    hands out bare connections.

    Example:
        >>> supervisor = ConnectionSupervisor(DatabaseConfig())
        >>> conn = await supervisor.get_connection()
        >>> await conn.fetchrow("SELECT * FROM metric WHERE date = $1", day)
    """

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        connect_timeout: Optional[float] = None,
        connect: Optional[Callable[..., Awaitable[Any]]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        on_connect: Optional[Callable[[], None]] = None,
    ):
        """Initialize supervisor.

        Args:
            config: Database configuration (default: DatabaseConfig())
            retry_interval: Seconds between connection attempts
            connect_timeout: Give up after this many seconds (None = never)
            connect: Connection factory (default: asyncpg.connect)
            sleep: Async sleep used between attempts (default: asyncio.sleep)
            on_connect: Callback invoked after every established connection
        """
        self.config = config or DatabaseConfig()
        self.retry_interval = retry_interval
        self.connect_timeout = connect_timeout
        self._connect = connect or asyncpg.connect
        self._sleep = sleep or asyncio.sleep
        self._on_connect = on_connect
        self._conn: Optional[Any] = None
        self._lock = asyncio.Lock()
        self.state = ConnectionState.DISCONNECTED
        self.connects = 0

    async def get_connection(self) -> Any:
        """Return a live connection, reconnecting as needed.

        Raises:
            TransientDatabaseError: Only when ``connect_timeout`` is set and elapses
        """
        async with self._lock:
            if self._conn is not None:
                if await self._is_alive(self._conn):
                    return self._conn
                logger.warning("database_connection_lost", database=self.config.database)
                await self._discard()

            self._conn = await self._establish()
            self.state = ConnectionState.CONNECTED
            self.connects += 1
            if self._on_connect is not None:
                self._on_connect()
            logger.info(
                "database_connection_established",
                host=self.config.host,
                database=self.config.database,
                connects=self.connects,
            )
            return self._conn

    async def close(self) -> None:
        """Close the supervised connection, if any."""
        async with self._lock:
            await self._discard()

    async def _is_alive(self, conn: Any) -> bool:
        if conn.is_closed():
            return False
        try:
            return await conn.fetchval("SELECT 1") == 1
        except DATABASE_ERRORS as e:
            logger.debug("database_probe_failed", error=str(e))
            return False

    async def _discard(self) -> None:
        conn, self._conn = self._conn, None
        self.state = ConnectionState.DISCONNECTED
        if conn is None:
            return
        try:
            await conn.close(timeout=self.retry_interval)
        except DATABASE_ERRORS as e:
            logger.warning("database_close_warning", error=str(e))

    def _log_failed_attempt(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "database_connect_failed",
            host=self.config.host,
            database=self.config.database,
            attempt=retry_state.attempt_number,
            retry_in=self.retry_interval,
            error=str(error),
        )

    async def _establish(self) -> Any:
        stop = stop_never if self.connect_timeout is None else stop_after_delay(self.connect_timeout)
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(DATABASE_ERRORS),
            wait=wait_fixed(self.retry_interval),
            stop=stop,
            sleep=self._sleep,
            before_sleep=self._log_failed_attempt,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    conn = await self._connect(
                        dsn=self.config.get_dsn(),
                        timeout=self.config.connect_timeout,
                        command_timeout=self.config.command_timeout,
                    )
        except DATABASE_ERRORS as e:
            logger.error(
                "database_connect_gave_up",
                database=self.config.database,
                timeout=self.connect_timeout,
                error=str(e),
            )
            raise TransientDatabaseError(
                f"Could not connect to database within {self.connect_timeout}s: {e}"
            ) from e
        return conn
