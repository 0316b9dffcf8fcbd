"""Periodic store refresh with a skip-if-fresh guard.

Uses AsyncIOScheduler with an interval trigger. A tick that arrives while the
previous refresh is still running, or before the quiet period has elapsed
since the last completed refresh, is skipped rather than queued.
"""

import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from wskstatus.activations.buckets import local_now, window_retention
from wskstatus.activations.store import ActivationStore

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD = timedelta(seconds=10)


class StoreRefresher:
    """Drives ``store.refresh`` and remembers when it last completed.

    With ``window_buckets`` set, each refresh first slides the retention
    boundary so the store always covers that many buckets back from now.
    """

    def __init__(
        self,
        store: ActivationStore,
        *,
        quiet_period: timedelta = DEFAULT_QUIET_PERIOD,
        window_buckets: int | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.store = store
        self.quiet_period = quiet_period
        self.window_buckets = window_buckets
        self.last_refresh: datetime | None = None
        self._clock = clock
        self._in_flight = False

    def is_stale(self, now: datetime) -> bool:
        return self.last_refresh is None or now - self.last_refresh > self.quiet_period

    def mark_refreshed(self) -> None:
        self.last_refresh = self._clock()

    async def refresh_if_stale(self) -> bool:
        """Refresh the store unless it is fresh or already refreshing.

        Returns:
            True if a refresh ran.
        """
        now = self._clock()
        if self._in_flight or not self.is_stale(now):
            logger.debug("Skipping refresh (in flight=%s, last=%s)", self._in_flight, self.last_refresh)
            return False

        self._in_flight = True
        try:
            if self.window_buckets is not None:
                self.store.min_retention = window_retention(self.store.bucket_unit, self.window_buckets, now)
                self.store.truncate()
            await self.store.refresh(on_done=self.mark_refreshed)
        finally:
            self._in_flight = False
        return True


async def _scheduled_refresh_job(refresher: StoreRefresher) -> None:
    """Async job executed by the scheduler; errors are logged, never raised."""
    try:
        await refresher.refresh_if_stale()
    except Exception:
        logger.exception("Scheduled activation refresh failed")


def start_scheduler(refresher: StoreRefresher, interval_seconds: int) -> AsyncIOScheduler:
    """Start an APScheduler job that refreshes the store every ``interval_seconds``."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _scheduled_refresh_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[refresher],
        id="activation_refresh",
        name="Activation store refresh",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Refresh scheduler started every %ds", interval_seconds)
    return scheduler


def stop_scheduler(scheduler: AsyncIOScheduler | None) -> None:
    """Gracefully shut down the scheduler if it is running."""
    if scheduler is not None:
        with contextlib.suppress(Exception):
            scheduler.shutdown(wait=False)
        logger.info("Refresh scheduler stopped")
