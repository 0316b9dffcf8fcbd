"""Calendar-aligned bucket arithmetic for activation statistics.

All boundaries are computed in the time zone of the datetime passed in. Pass
datetimes carrying a real zone (see :func:`local_now`) so that day, week,
month and year boundaries stay on local midnight across DST changes.
"""

import logging
import os
from datetime import UTC, datetime, timedelta, tzinfo
from enum import Enum
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

LOCALTIME_PATH = "/etc/localtime"


class TimeFrame(str, Enum):
    """Width of the calendar buckets used to aggregate activations."""

    MINUTELY = "minutely"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Minutes and hours are elapsed time; days and weeks are wall-clock steps.
_ELAPSED_STEPS: dict[TimeFrame, timedelta] = {
    TimeFrame.MINUTELY: timedelta(minutes=1),
    TimeFrame.HOURLY: timedelta(hours=1),
}

_WALL_STEPS: dict[TimeFrame, timedelta] = {
    TimeFrame.DAILY: timedelta(days=1),
    TimeFrame.WEEKLY: timedelta(weeks=1),
}

# Approximate unit lengths for sliding retention windows.
_WINDOW_UNITS: dict[TimeFrame, timedelta] = {
    **_ELAPSED_STEPS,
    **_WALL_STEPS,
    TimeFrame.MONTHLY: timedelta(days=30),
    TimeFrame.YEARLY: timedelta(days=365),
}

# How far back a one-shot console run looks for each frame.
_DEFAULT_RETENTION: dict[TimeFrame, timedelta] = {
    TimeFrame.MINUTELY: timedelta(minutes=160),
    TimeFrame.HOURLY: timedelta(days=7),
    TimeFrame.DAILY: timedelta(days=2 * 31),
    TimeFrame.WEEKLY: timedelta(days=180),
    TimeFrame.MONTHLY: timedelta(days=2 * 365),
    TimeFrame.YEARLY: timedelta(days=120 * 365),
}


def to_epoch_ms(dt: datetime) -> int:
    """Convert a datetime to the API's millisecond epoch."""
    return int(dt.timestamp() * 1000)


def resolve_zone(name: str = "") -> tzinfo:
    """Resolve the zone whose calendar defines bucket boundaries.

    An explicit ``name`` wins, then the ``TZ`` environment variable, then the
    system zone file. A fixed offset taken from the current local time is the
    last resort; it does not follow DST.
    """
    name = (name or os.environ.get("TZ", "")).strip().lstrip(":")
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown time zone %r, falling back to the system zone", name)

    try:
        with open(LOCALTIME_PATH, "rb") as f:
            return ZoneInfo.from_file(f, key="localtime")
    except (OSError, ValueError):
        logger.warning("Cannot read %s, using a fixed UTC offset", LOCALTIME_PATH)
    return datetime.now().astimezone().tzinfo or UTC


@lru_cache(maxsize=1)
def system_zone() -> tzinfo:
    return resolve_zone()


def local_now(zone: tzinfo | None = None) -> datetime:
    """Current time in ``zone`` (default: the system zone)."""
    return datetime.now(zone or system_zone())


def truncate_to_frame(dt: datetime, frame: TimeFrame) -> datetime:
    """Round ``dt`` down to the natural calendar boundary of ``frame``.

    Weeks start on Monday.
    """
    dt = dt.replace(second=0, microsecond=0)
    if frame is TimeFrame.MINUTELY:
        return dt
    dt = dt.replace(minute=0)
    if frame is TimeFrame.HOURLY:
        return dt
    dt = dt.replace(hour=0)
    if frame is TimeFrame.DAILY:
        return dt
    if frame is TimeFrame.WEEKLY:
        return dt - timedelta(days=dt.weekday())
    dt = dt.replace(day=1)
    if frame is TimeFrame.MONTHLY:
        return dt
    return dt.replace(month=1)


def shift_frame(dt: datetime, frame: TimeFrame, n: int) -> datetime:
    """Move ``dt`` by ``n`` calendar units of ``frame`` (negative moves back).

    Minutes and hours step in elapsed time, so buckets keep their length
    across DST changes. Days and longer step in wall-clock time; with a zoned
    ``dt`` the offset is recomputed, keeping local midnight. Months and years
    are only exact on boundaries produced by :func:`truncate_to_frame` (day 1
    always exists).
    """
    if frame in _ELAPSED_STEPS:
        return (dt.astimezone(UTC) + _ELAPSED_STEPS[frame] * n).astimezone(dt.tzinfo)
    if frame in _WALL_STEPS:
        return dt + _WALL_STEPS[frame] * n
    if frame is TimeFrame.MONTHLY:
        index = dt.year * 12 + (dt.month - 1) + n
        return dt.replace(year=index // 12, month=index % 12 + 1)
    return dt.replace(year=dt.year + n)


def bucket_bounds(frame: TimeFrame, now: datetime, min_retention: datetime) -> list[tuple[datetime, datetime]]:
    """Return ``(lower, upper]`` bucket intervals, oldest first.

    The newest bucket ends one unit after the current boundary, so it may
    still be filling. Walking stops once an upper bound no longer exceeds
    ``min_retention``.
    """
    upper = shift_frame(truncate_to_frame(now, frame), frame, 1)
    bounds: list[tuple[datetime, datetime]] = []
    while upper > min_retention:
        lower = shift_frame(upper, frame, -1)
        bounds.append((lower, upper))
        upper = lower
    bounds.reverse()
    return bounds


def default_retention(frame: TimeFrame, now: datetime) -> datetime:
    """Retention boundary used by one-shot console runs."""
    return now - _DEFAULT_RETENTION[frame]


def window_retention(frame: TimeFrame, buckets: int, now: datetime) -> datetime:
    """Retention boundary covering ``buckets`` units back from ``now``."""
    return now - _WINDOW_UNITS[frame] * buckets
