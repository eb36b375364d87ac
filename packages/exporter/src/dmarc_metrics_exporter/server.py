"""HTTP exposition server for the DMARC metrics exporter.

Serves, on one port (default 9100):
- /metrics - Prometheus text exposition (DMARC gauges + exporter metrics)
- /health  - Liveness probe

Uses a minimal asyncio HTTP implementation; every request gets its own
task and ``Connection: close``.
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
import time
from datetime import date, timedelta
from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from prometheus_client.registry import CollectorRegistry

from dmarc_metrics_common import Settings, TransientDatabaseError, get_logger, get_settings
from dmarc_metrics_storage import ConnectionSupervisor, DatabaseConfig

from dmarc_metrics_exporter.cache import MetricsCache
from dmarc_metrics_exporter.collector import DmarcFieldCollector
from dmarc_metrics_exporter.metrics import DB_CONNECTS, SCRAPE_DURATION, SCRAPES_TOTAL

logger = get_logger(__name__)

METRICS_PATH = "/metrics"
HEALTH_PATH = "/health"
REQUEST_LINE_TIMEOUT = 5.0

_STATUS_TEXT = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def days_before_today(days: int) -> date:
    """Calendar date ``days`` days before today (local time)."""
    return date.today() - timedelta(days=days)


class ExporterServer:
    """Minimal async HTTP server answering Prometheus scrapes."""

    def __init__(
        self,
        collector: DmarcFieldCollector,
        host: str = "0.0.0.0",
        port: int = 9100,
        scrape_timeout: Optional[float] = 30.0,
        registry: CollectorRegistry = REGISTRY,
    ):
        """Initialize exporter server.

        Args:
            collector: DMARC field collector, registered on ``registry``
            host: Bind address
            port: Bind port
            scrape_timeout: Seconds before a scrape is answered with 503 (None = wait)
            registry: Registry rendered on /metrics
        """
        self.collector = collector
        self.host = host
        self.port = port
        self.scrape_timeout = scrape_timeout
        self.registry = registry
        self.server: asyncio.Server | None = None
        self.started_at = time.time()
        self._registered = False

    async def render_metrics(self) -> bytes:
        """Sample the cache and render the exposition text."""
        await asyncio.wait_for(self.collector.refresh(), timeout=self.scrape_timeout)
        return generate_latest(self.registry)

    async def handle_request(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Handle HTTP request."""
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=REQUEST_LINE_TIMEOUT)
            if not request_line:
                return

            parts = request_line.decode("latin-1").strip().split()
            if len(parts) < 2:
                await self._send_response(writer, 400, b"Bad Request")
                return

            method, path = parts[0], parts[1].split("?", 1)[0]

            # Consume headers
            while True:
                line = await reader.readline()
                if line in (b"\r\n", b"\n", b""):
                    break

            if method != "GET":
                await self._send_response(writer, 405, b"Method Not Allowed")
            elif path == METRICS_PATH:
                await self._handle_metrics(writer)
            elif path == HEALTH_PATH:
                await self._handle_health(writer)
            else:
                await self._send_response(writer, 404, b"Not Found")

        except asyncio.TimeoutError:
            pass
        except ConnectionError as e:
            logger.debug("client_disconnected", error=str(e))
        except Exception as e:
            logger.exception("request_failed", error=str(e))
            await self._send_response(writer, 500, b"Internal Server Error")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _handle_metrics(self, writer: asyncio.StreamWriter) -> None:
        """Handle /metrics - Prometheus scrape."""
        start = time.perf_counter()
        try:
            body = await self.render_metrics()
        except asyncio.TimeoutError:
            SCRAPES_TOTAL.labels(status="timeout").inc()
            logger.warning("scrape_timeout", timeout=self.scrape_timeout)
            await self._send_response(writer, 503, b"Database unavailable (scrape timed out)\n")
            return
        except TransientDatabaseError as e:
            SCRAPES_TOTAL.labels(status="error").inc()
            logger.warning("scrape_database_unavailable", error=str(e))
            await self._send_response(writer, 503, f"Database unavailable: {e}\n".encode())
            return
        finally:
            SCRAPE_DURATION.observe(time.perf_counter() - start)

        SCRAPES_TOTAL.labels(status="ok").inc()
        await self._send_response(writer, 200, body, content_type=CONTENT_TYPE_LATEST)

    async def _handle_health(self, writer: asyncio.StreamWriter) -> None:
        """Handle /health - liveness probe."""
        body = json.dumps(
            {
                "status": "ok",
                "uptime_seconds": round(time.time() - self.started_at, 2),
            }
        ).encode()
        await self._send_response(writer, 200, body, content_type="application/json")

    async def _send_response(
        self,
        writer: asyncio.StreamWriter,
        status: int,
        body: bytes,
        content_type: str = "text/plain; charset=utf-8",
    ) -> None:
        """Send HTTP response."""
        status_text = _STATUS_TEXT.get(status, "Unknown")
        head = (
            f"HTTP/1.1 {status} {status_text}\r\n"
            f"Content-Type: {content_type}\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(head.encode("latin-1") + body)
        await writer.drain()

    async def start(self) -> None:
        """Register the collector and start listening."""
        if not self._registered:
            self.registry.register(self.collector)
            self._registered = True
        self.server = await asyncio.start_server(
            self.handle_request,
            host=self.host,
            port=self.port,
        )
        logger.info("exporter_listening", host=self.host, port=self.port, path=METRICS_PATH)

    async def stop(self) -> None:
        """Stop listening and unregister the collector."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
        if self._registered:
            self.registry.unregister(self.collector)
            self._registered = False


def build_exporter(
    days_before: int,
    settings: Optional[Settings] = None,
    db_config: Optional[DatabaseConfig] = None,
    registry: CollectorRegistry = REGISTRY,
) -> tuple[ExporterServer, ConnectionSupervisor]:
    """Wire supervisor, cache, collector and server from settings."""
    settings = settings or get_settings()

    supervisor = ConnectionSupervisor(
        db_config,
        retry_interval=settings.reconnect_interval_seconds,
        connect_timeout=settings.connect_timeout_seconds,
        on_connect=DB_CONNECTS.inc,
    )
    cache = MetricsCache(supervisor, ttl=settings.cache_ttl_seconds)
    collector = DmarcFieldCollector(cache, target_date=lambda: days_before_today(days_before))
    server = ExporterServer(
        collector,
        host=settings.exporter_host,
        port=settings.exporter_port,
        scrape_timeout=settings.scrape_timeout_seconds,
        registry=registry,
    )
    return server, supervisor


async def run_exporter(
    days_before: int,
    settings: Optional[Settings] = None,
    db_config: Optional[DatabaseConfig] = None,
) -> None:
    """Run the exporter until SIGINT or SIGTERM.

    Args:
        days_before: Expose the row for today minus this many days
        settings: Exporter settings (default: get_settings())
        db_config: Database configuration (default: from environment)
    """
    server, supervisor = build_exporter(days_before, settings, db_config)
    await server.start()
    print(
        f"DMARC metrics exporter listening on {server.host}:{server.port}{METRICS_PATH}",
        file=sys.stderr,
    )
    logger.info("exporter_started", days_before=days_before)

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await shutdown_event.wait()
    finally:
        logger.info("exporter_stopping")
        await server.stop()
        await supervisor.close()
        logger.info("exporter_stopped")
