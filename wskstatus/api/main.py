"""FastAPI web adapter serving activation statistics as JSON.

One store per application, held on ``app.state`` together with its
refresher and scheduler. The store is loaded once at startup and then
refreshed on an interval by the scheduler.

Run with: uvicorn wskstatus.api.main:app --port 8085
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from functools import partial

from fastapi import APIRouter, FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from wskstatus.activations.buckets import TimeFrame, local_now, resolve_zone
from wskstatus.activations.client import fetch_activations
from wskstatus.activations.scheduler import StoreRefresher, start_scheduler, stop_scheduler
from wskstatus.activations.store import ActivationStore, Fetcher, TopEntry
from wskstatus.config import Connection, get_settings, resolve_connection
from wskstatus.observability.metrics import APP_INFO, REQUESTS_TOTAL

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class PlotTrace(BaseModel):
    """One plotly-style trace for GET /data/."""

    x: list[int]
    y: list[int]
    type: str
    name: str
    xaxis: str
    yaxis: str


class ActivationSummary(BaseModel):
    """A recent activation, without logs or annotations."""

    id: str
    name: str
    start: int
    end: int
    duration: int
    status_code: int | None


class SummaryResponse(BaseModel):
    """Response body for GET /summary."""

    frame: TimeFrame
    held: int
    duplicates: int
    last_refresh: str | None
    top: list[TopEntry]
    last: list[ActivationSummary]


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    namespace: str
    held: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


def _store(request: Request) -> ActivationStore:
    store: ActivationStore = request.app.state.store
    return store


def _refresher(request: Request) -> StoreRefresher:
    refresher: StoreRefresher = request.app.state.refresher
    return refresher


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/data/", response_model=list[PlotTrace])
async def data(request: Request) -> list[PlotTrace]:
    """Activation counts and average durations per bucket, newest bucket at x=0."""
    store = _store(request)
    bins = store.binned()
    activations = [len(records) for records in bins]
    durations = store.averages(bins)
    deltas = [i - len(activations) for i in range(1, len(activations) + 1)]

    REQUESTS_TOTAL.labels(endpoint="/data/", status="success").inc()
    return [
        PlotTrace(x=deltas, y=activations, type="line", name="Activations", xaxis="x1", yaxis="y1"),
        PlotTrace(x=deltas, y=durations, type="bar", name="Average Duration", xaxis="x2", yaxis="y2"),
    ]


@router.get("/summary", response_model=SummaryResponse)
async def summary(request: Request) -> SummaryResponse:
    """Top functions, most recent activations and store diagnostics."""
    store = _store(request)
    last_refresh = _refresher(request).last_refresh

    REQUESTS_TOTAL.labels(endpoint="/summary", status="success").inc()
    return SummaryResponse(
        frame=store.bucket_unit,
        held=len(store.items),
        duplicates=store.duplicates,
        last_refresh=last_refresh.isoformat() if last_refresh else None,
        top=store.top5,
        last=[
            ActivationSummary(
                id=r.id,
                name=r.name,
                start=r.start,
                end=r.end,
                duration=r.duration,
                status_code=r.status_code,
            )
            for r in store.last5
        ],
    )


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """``healthy`` once at least one refresh has completed."""
    store = _store(request)
    status = "healthy" if _refresher(request).last_refresh is not None else "starting"
    REQUESTS_TOTAL.labels(endpoint="/health", status="success").inc()
    return HealthResponse(status=status, namespace=store.namespace, held=len(store.items))


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    connection: Connection | None = None,
    frame: TimeFrame | None = None,
    fetcher: Fetcher | None = None,
) -> FastAPI:
    """Build the web application.

    Without an explicit ``connection`` the lifespan resolves one from
    settings and ``.wskprops``; a ConfigurationError aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = get_settings()
        conn = connection or resolve_connection(settings)
        time_frame = frame or settings.time_frame
        clock = partial(local_now, resolve_zone(settings.time_zone))
        APP_INFO.info({"version": "0.1.0", "frame": time_frame.value})

        store = ActivationStore(
            conn.base,
            conn.auth.get_secret_value(),
            conn.namespace,
            fetcher=fetcher or partial(fetch_activations, timeout=settings.request_timeout_seconds),
            bucket_unit=time_frame,
            clock=clock,
        )
        refresher = StoreRefresher(
            store,
            quiet_period=timedelta(seconds=settings.refresh_quiet_seconds),
            window_buckets=settings.web_window_buckets,
            clock=clock,
        )
        app.state.store = store
        app.state.refresher = refresher

        logger.info("Loading activations for namespace %s (%s)", conn.namespace, time_frame.value)
        await refresher.refresh_if_stale()

        app.state.scheduler = start_scheduler(refresher, settings.refresh_interval_seconds)
        yield
        stop_scheduler(app.state.scheduler)
        logger.info("Shutting down wskstatus web")

    app = FastAPI(title="wskstatus", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
