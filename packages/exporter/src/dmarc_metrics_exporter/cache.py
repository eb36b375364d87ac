"""Time-bounded cache of the daily metrics row.

Scrapes read through the cache; the database is queried at most once per
TTL per date. A "no row for this date" answer is cached too, so an exporter
pointed at a day that has not been aggregated yet does not hit the database
on every scrape.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from dmarc_metrics_common import TransientDatabaseError, get_logger
from dmarc_metrics_contracts import MetricsRow
from dmarc_metrics_storage import DATABASE_ERRORS, ConnectionSupervisor, fetch_metrics_row

from dmarc_metrics_exporter.metrics import CACHE_REFRESHES

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 10.0

FetchRow = Callable[[Any, date], Awaitable[Optional[MetricsRow]]]


@dataclass(frozen=True)
class CacheEntry:
    """Result of one refresh. ``row`` is None when the date has no row.

    ``failed`` marks an entry written after a database error; it carries
    the previous row (if any) and still lives for one TTL.
    """

    fetched_at: float
    row: Optional[MetricsRow]
    failed: bool = False


class MetricsCache:
    """Per-date cache of metrics rows with a fixed TTL.

    Refreshes are single-flight per date: concurrent reads of a stale entry
    wait for one query instead of each issuing their own.

    A failed refresh is cached for one TTL like a successful one, keeping
    the previous row (stale) or no row at all, so a database outage costs
    one attempt per TTL rather than one per read.

    Only the most recently requested date is kept; the exporter's target
    date moves forward once a day.
    """

    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        fetch: FetchRow = fetch_metrics_row,
    ):
        """Initialize cache.

        Args:
            supervisor: Source of live database connections
            ttl: Maximum entry age in seconds
            clock: Monotonic time source
            fetch: Row loader ``(conn, day) -> MetricsRow | None``
        """
        self.supervisor = supervisor
        self.ttl = ttl
        self._clock = clock
        self._fetch = fetch
        self._entries: dict[date, CacheEntry] = {}
        self._locks: dict[date, asyncio.Lock] = {}

    def _is_fresh(self, entry: Optional[CacheEntry]) -> bool:
        return entry is not None and self._clock() - entry.fetched_at < self.ttl

    def entry(self, as_of: date) -> Optional[CacheEntry]:
        """Current entry for ``as_of`` without refreshing."""
        return self._entries.get(as_of)

    async def get_row(self, as_of: date) -> Optional[MetricsRow]:
        """Return the metrics row for ``as_of``, refreshing if stale."""
        entry = self._entries.get(as_of)
        if self._is_fresh(entry):
            return entry.row

        lock = self._locks.setdefault(as_of, asyncio.Lock())
        async with lock:
            entry = self._entries.get(as_of)
            if self._is_fresh(entry):
                return entry.row
            entry = await self._refresh(as_of, stale=entry)

        self._evict_except(as_of)
        return entry.row

    async def get_field(self, name: str, as_of: date) -> Optional[int]:
        """Return one field of the row for ``as_of``.

        None means "not measured": no row for the date, no such column,
        or a NULL value. It is never collapsed to zero.
        """
        row = await self.get_row(as_of)
        if row is None:
            return None
        return row.get(name)

    def _evict_except(self, keep: date) -> None:
        for day in [d for d in self._entries if d != keep]:
            del self._entries[day]
        for day in [d for d, lock in self._locks.items() if d != keep and not lock.locked()]:
            del self._locks[day]

    async def _refresh(self, as_of: date, stale: Optional[CacheEntry]) -> CacheEntry:
        try:
            conn = await self.supervisor.get_connection()
            row = await self._fetch(conn, as_of)
        except (TransientDatabaseError, *DATABASE_ERRORS) as e:
            CACHE_REFRESHES.labels(outcome="failed").inc()
            logger.warning(
                "cache_refresh_failed",
                date=as_of.isoformat(),
                serving_stale=stale is not None and stale.row is not None,
                retry_in=self.ttl,
                error=str(e),
            )
            entry = CacheEntry(
                fetched_at=self._clock(),
                row=stale.row if stale is not None else None,
                failed=True,
            )
        else:
            entry = CacheEntry(fetched_at=self._clock(), row=row)
            CACHE_REFRESHES.labels(outcome="found" if row is not None else "missing").inc()
            logger.debug("cache_refreshed", date=as_of.isoformat(), found=row is not None)

        self._entries[as_of] = entry
        return entry
