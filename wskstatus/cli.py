"""Command-line front-end: print activation statistics for a namespace.

Usage:
    wskstatus                      # one-shot summary, connection from ~/.wskprops
    wskstatus -f daily --watch     # reprint every refresh interval
    wskstatus --serve --port 8085  # run the JSON web adapter
"""

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime, timedelta
from functools import partial

from wskstatus.activations.buckets import TimeFrame, default_retention, local_now, resolve_zone
from wskstatus.activations.client import fetch_activations
from wskstatus.activations.models import ActivationRecord
from wskstatus.activations.scheduler import StoreRefresher
from wskstatus.activations.store import ActivationStore, TopEntry
from wskstatus.config import ConfigurationError, Connection, Settings, get_settings, resolve_connection

logger = logging.getLogger(__name__)


# --- Formatting helpers ---


def _format_top(entries: list[TopEntry]) -> str:
    if not entries:
        return "No activations found."
    lines = [f"Top {len(entries)} function(s):"]
    for entry in entries:
        lines.append(f"  {entry['name']}: {entry['occurrences']} activation(s), avg {entry['average']} ms")
    return "\n".join(lines)


def _format_last(records: list[ActivationRecord]) -> str:
    if not records:
        return "No recent activations."
    lines = [f"Last {len(records)} activation(s):"]
    for record in records:
        started = record.started_at.strftime("%Y-%m-%d %H:%M:%S")
        status = "?" if record.status_code is None else str(record.status_code)
        lines.append(f"  [{started}] {record.name} ({record.id}) status={status} {record.duration} ms")
    return "\n".join(lines)


def format_summary(store: ActivationStore) -> str:
    """Render the console report for the current store contents."""
    bins = store.binned()
    counts = [len(records) for records in bins]
    return "\n".join(
        [
            _format_top(store.top5),
            _format_last(store.last5),
            f"{counts} activations",
            f"{store.averages(bins)} average duration (ms)",
            f"{store.duplicates} duplicates",
        ]
    )


# --- Commands ---


def build_store(connection: Connection, frame: TimeFrame, settings: Settings) -> ActivationStore:
    clock = partial(local_now, resolve_zone(settings.time_zone))
    return ActivationStore(
        connection.base,
        connection.auth.get_secret_value(),
        connection.namespace,
        fetcher=partial(fetch_activations, timeout=settings.request_timeout_seconds),
        min_retention=default_retention(frame, clock()),
        bucket_unit=frame,
        clock=clock,
    )


async def run_once(store: ActivationStore) -> None:
    await store.refresh()
    print(format_summary(store))


async def run_watch(store: ActivationStore, settings: Settings) -> None:
    """Refresh and reprint until interrupted."""
    refresher = StoreRefresher(
        store,
        quiet_period=timedelta(seconds=settings.refresh_quiet_seconds),
        clock=store.clock,
    )
    while True:
        store.min_retention = default_retention(store.bucket_unit, store.clock())
        store.truncate()
        try:
            refreshed = await refresher.refresh_if_stale()
        except Exception:
            logger.exception("Refresh failed")
            refreshed = False
        if refreshed:
            print(f"\n--- {datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S')} UTC ---")
            print(format_summary(store))
        await asyncio.sleep(settings.refresh_interval_seconds)


def serve(connection: Connection, frame: TimeFrame, settings: Settings, port: int | None) -> None:
    import uvicorn

    from wskstatus.api.main import create_app

    uvicorn.run(create_app(connection, frame), host=settings.web_host, port=port or settings.web_port)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wskstatus",
        description="List activations from your wsk instance and display a bunch of statistics.",
    )
    parser.add_argument("-b", "--baseurl", help="API host of your wsk instance (default: APIHOST from ~/.wskprops)")
    parser.add_argument("-n", "--namespace", help="Namespace on your wsk instance (default: NAMESPACE from ~/.wskprops)")
    parser.add_argument("-t", "--token", help="Authentication token (default: AUTH from ~/.wskprops)")
    parser.add_argument(
        "-f",
        "--frame",
        type=TimeFrame,
        choices=list(TimeFrame),
        default=None,
        help="Bucket width used to aggregate data (default: hourly)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--watch", action="store_true", help="Keep refreshing and reprinting")
    mode.add_argument("--serve", action="store_true", help="Serve statistics as JSON over HTTP")
    parser.add_argument("--port", type=int, default=None, help="Port for --serve (default: 8085)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log refresh progress")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point; returns the process exit code."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        settings = get_settings()
        connection = resolve_connection(settings, args.baseurl, args.namespace, args.token)
    except ConfigurationError as e:
        print(e, file=sys.stderr)
        return 2

    frame: TimeFrame = args.frame or settings.time_frame

    if args.serve:
        serve(connection, frame, settings, args.port)
        return 0

    store = build_store(connection, frame, settings)
    try:
        if args.watch:
            asyncio.run(run_watch(store, settings))
        else:
            asyncio.run(run_once(store))
    except KeyboardInterrupt:
        print("\nGoodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
