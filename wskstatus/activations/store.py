"""In-memory, time-bounded history of activations with derived statistics.

The store keeps ``items`` sorted by start time, newest first. ``refresh``
pages forward from the newest record held and backward from the oldest one
down to the retention boundary, so repeated refreshes only fetch what is
missing. Failed pages count as empty; held data is never discarded by a
failed refresh.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Protocol

from typing_extensions import TypedDict

from wskstatus.activations import buckets
from wskstatus.activations.buckets import TimeFrame
from wskstatus.activations.client import CommunicationError, fetch_activations
from wskstatus.activations.models import ActivationRecord
from wskstatus.observability.metrics import (
    ACTIVATION_DUPLICATES,
    ACTIVATIONS_HELD,
    FETCH_CALLS_TOTAL,
    FETCH_DURATION,
    REFRESH_DURATION,
    REFRESHES_TOTAL,
)

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    def __call__(
        self,
        base: str,
        auth: str,
        namespace: str,
        since: int | None = None,
        upto: int | None = None,
        include_details: bool = False,
    ) -> Awaitable[list[ActivationRecord]]: ...


class TopEntry(TypedDict):
    name: str
    occurrences: int
    average: int


def _newest_first(records: list[ActivationRecord]) -> list[ActivationRecord]:
    return sorted(records, key=lambda r: r.start, reverse=True)


def _truncated_mean(total: int, count: int) -> int:
    """Integer mean rounded toward zero."""
    quotient = abs(total) // count
    return quotient if total >= 0 else -quotient


class ActivationStore:
    """Rolling activation history for one namespace.

    Set ``min_retention`` and ``bucket_unit`` before the first meaningful
    ``refresh``. Changing ``bucket_unit`` later only affects projections.
    """

    def __init__(
        self,
        base: str,
        auth: str,
        namespace: str,
        *,
        fetcher: Fetcher = fetch_activations,
        min_retention: datetime | None = None,
        bucket_unit: TimeFrame = TimeFrame.HOURLY,
        clock: Callable[[], datetime] = buckets.local_now,
    ) -> None:
        self.base = base
        self.auth = auth
        self.namespace = namespace
        self.bucket_unit = bucket_unit
        self.items: list[ActivationRecord] = []
        self._fetcher = fetcher
        self.clock = clock
        self._failed_pages = 0
        self.min_retention = min_retention or clock() - timedelta(days=1)

    @property
    def min_retention_ms(self) -> int:
        return buckets.to_epoch_ms(self.min_retention)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def _fetch_page(
        self,
        direction: str,
        since: int | None = None,
        upto: int | None = None,
    ) -> list[ActivationRecord]:
        """Fetch one page; a communication failure yields an empty page."""
        start = time.monotonic()
        try:
            page = await self._fetcher(
                self.base,
                self.auth,
                self.namespace,
                since=since,
                upto=upto,
                include_details=True,
            )
        except CommunicationError as e:
            self._failed_pages += 1
            FETCH_CALLS_TOTAL.labels(direction=direction, status="error").inc()
            logger.warning("Activation fetch failed (%s, since=%s, upto=%s): %s", direction, since, upto, e)
            return []
        finally:
            FETCH_DURATION.labels(direction=direction).observe(time.monotonic() - start)

        FETCH_CALLS_TOTAL.labels(direction=direction, status="success").inc()
        logger.debug("Fetched %d activations (%s, since=%s, upto=%s)", len(page), direction, since, upto)
        return page

    async def refresh(self, on_done: Callable[[], None] | None = None) -> None:
        """Pick up newer activations, then extend history back to ``min_retention``.

        The merge is built on a copy and swapped into ``items`` at the end,
        so readers never observe a half-merged list.
        """
        started = time.monotonic()
        items = list(self.items)
        self._failed_pages = 0

        if items:
            since = max(r.end for r in items) + 1
            newer = await self._fetch_page("forward", since=since)
            items = _newest_first(newer) + items
        else:
            items = _newest_first(await self._fetch_page("seed"))

        min_epoch = self.min_retention_ms
        while items and items[-1].start >= min_epoch:
            oldest = items[-1].start
            page = await self._fetch_page("backward", upto=oldest - 1)
            # Only strictly older records count, so the cursor always moves back.
            older = [r for r in _newest_first(page) if min_epoch <= r.start < oldest]
            if not older:
                break
            items.extend(older)

        items.sort(key=lambda r: r.start, reverse=True)
        self.items = items

        duplicates = self.duplicates
        ACTIVATIONS_HELD.set(len(items))
        ACTIVATION_DUPLICATES.set(duplicates)
        REFRESH_DURATION.observe(time.monotonic() - started)
        outcome = "partial" if self._failed_pages else "complete"
        REFRESHES_TOTAL.labels(outcome=outcome).inc()
        if duplicates:
            logger.warning("Store holds %d duplicate activation(s) after refresh", duplicates)
        logger.info("Refresh %s: holding %d activations", outcome, len(items))

        if on_done is not None:
            on_done()

    def truncate(self) -> None:
        """Drop records that started before ``min_retention``. No I/O."""
        min_epoch = self.min_retention_ms
        self.items = [r for r in self.items if r.start >= min_epoch]
        ACTIVATIONS_HELD.set(len(self.items))

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def bucket_bounds(self, max_count: int | None = None) -> list[tuple[datetime, datetime]]:
        """``(lower, upper]`` intervals matching :meth:`binned`, oldest first."""
        bounds = buckets.bucket_bounds(self.bucket_unit, self.clock(), self.min_retention)
        if max_count is not None:
            bounds = bounds[max(len(bounds) - max_count, 0) :] if max_count > 0 else []
        return bounds

    def binned(self, max_count: int | None = None) -> list[list[ActivationRecord]]:
        """Group ``items`` into calendar buckets, oldest first.

        Empty buckets are kept. With ``max_count``, only the most recent
        ``max_count`` buckets are returned.
        """
        result: list[list[ActivationRecord]] = []
        for lower, upper in self.bucket_bounds(max_count):
            low_ms = buckets.to_epoch_ms(lower)
            high_ms = buckets.to_epoch_ms(upper)
            result.append([r for r in self.items if low_ms < r.start <= high_ms])
        return result

    @staticmethod
    def averages(bins: list[list[ActivationRecord]]) -> list[int]:
        """Mean ``end - start`` of each bin; 0 for an empty bin."""
        return [_truncated_mean(sum(r.elapsed for r in records), len(records)) if records else 0 for records in bins]

    @property
    def average_durations(self) -> list[int]:
        """Mean ``end - start`` per bucket of :meth:`binned`; 0 for empty buckets."""
        return self.averages(self.binned())

    def averaged(self, count: int) -> list[int]:
        return self.averages(self.binned(count))

    def top(self, count: int) -> list[TopEntry]:
        """Most frequent function names with their average reported duration.

        Ordered by occurrences, then cumulative duration (both descending),
        then name.
        """
        totals: dict[str, tuple[int, int]] = {}
        for record in self.items:
            occurrences, cumulative = totals.get(record.name, (0, 0))
            totals[record.name] = (occurrences + 1, cumulative + record.duration)

        ranked = sorted(totals.items(), key=lambda kv: (-kv[1][0], -kv[1][1], kv[0]))
        result: list[TopEntry] = []
        for name, (occurrences, cumulative) in ranked[: max(count, 0)]:
            average = _truncated_mean(cumulative, occurrences) if occurrences else 0
            result.append(TopEntry(name=name, occurrences=occurrences, average=average))
        return result

    @property
    def top5(self) -> list[TopEntry]:
        return self.top(5)

    def last(self, count: int = 5) -> list[ActivationRecord]:
        """The ``count`` most recent activations."""
        return self.items[: max(count, 0)]

    @property
    def last5(self) -> list[ActivationRecord]:
        return self.last(5)

    @property
    def duplicates(self) -> int:
        """Number of held records whose id is already used by another one."""
        return len(self.items) - len({r.id for r in self.items})
