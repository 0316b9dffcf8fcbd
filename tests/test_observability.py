"""Unit tests for metric definitions and store instrumentation."""

from datetime import timedelta
from unittest.mock import AsyncMock

from factories import FIXED_NOW, epoch_ms, make_record
from prometheus_client import REGISTRY

from wskstatus.activations.client import CommunicationError
from wskstatus.activations.store import ActivationStore
from wskstatus.observability.metrics import (
    ACTIVATION_DUPLICATES,
    ACTIVATIONS_HELD,
    APP_INFO,
    FETCH_CALLS_TOTAL,
    FETCH_DURATION,
    REFRESH_DURATION,
    REFRESHES_TOTAL,
    REQUESTS_TOTAL,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _sample(metric_name: str, labels: dict[str, str] | None = None) -> float:
    """Read current value from the default registry, 0 if never observed."""
    return REGISTRY.get_sample_value(metric_name, labels or {}) or 0.0


def _store(fetcher: AsyncMock) -> ActivationStore:
    return ActivationStore(
        "openwhisk.test",
        "user:key",
        "guest",
        fetcher=fetcher,
        min_retention=FIXED_NOW - timedelta(hours=3),
        clock=lambda: FIXED_NOW,
    )


# ---------------------------------------------------------------------------
# Metric definition tests
# ---------------------------------------------------------------------------


class TestMetricDefinitions:
    """Verify all expected metrics are registered with correct types."""

    def test_fetch_calls_total_is_counter(self) -> None:
        assert FETCH_CALLS_TOTAL._type == "counter"

    def test_fetch_duration_is_histogram(self) -> None:
        assert FETCH_DURATION._type == "histogram"

    def test_refresh_duration_is_histogram(self) -> None:
        assert REFRESH_DURATION._type == "histogram"

    def test_refreshes_total_is_counter(self) -> None:
        assert REFRESHES_TOTAL._type == "counter"

    def test_activations_held_is_gauge(self) -> None:
        assert ACTIVATIONS_HELD._type == "gauge"

    def test_duplicates_is_gauge(self) -> None:
        assert ACTIVATION_DUPLICATES._type == "gauge"

    def test_requests_total_is_counter(self) -> None:
        assert REQUESTS_TOTAL._type == "counter"

    def test_app_info_is_info(self) -> None:
        assert APP_INFO._type == "info"


# ---------------------------------------------------------------------------
# Store instrumentation
# ---------------------------------------------------------------------------


class TestStoreInstrumentation:
    async def test_successful_refresh_counts_complete(self) -> None:
        before_ok = _sample("wskstatus_fetch_calls_total", {"direction": "seed", "status": "success"})
        before_complete = _sample("wskstatus_refreshes_total", {"outcome": "complete"})
        records = [make_record("a", epoch_ms(FIXED_NOW - timedelta(minutes=10)))]

        await _store(AsyncMock(side_effect=[records, []])).refresh()

        assert _sample("wskstatus_fetch_calls_total", {"direction": "seed", "status": "success"}) == before_ok + 1
        assert _sample("wskstatus_refreshes_total", {"outcome": "complete"}) == before_complete + 1
        assert _sample("wskstatus_activations_held") == 1

    async def test_failed_page_counts_partial(self) -> None:
        before_err = _sample("wskstatus_fetch_calls_total", {"direction": "seed", "status": "error"})
        before_partial = _sample("wskstatus_refreshes_total", {"outcome": "partial"})

        await _store(AsyncMock(side_effect=CommunicationError("down"))).refresh()

        assert _sample("wskstatus_fetch_calls_total", {"direction": "seed", "status": "error"}) == before_err + 1
        assert _sample("wskstatus_refreshes_total", {"outcome": "partial"}) == before_partial + 1

    async def test_duplicates_gauge_follows_store(self) -> None:
        start = epoch_ms(FIXED_NOW - timedelta(minutes=10))
        page = [make_record("dup", start), make_record("dup", start - 1000)]

        await _store(AsyncMock(side_effect=[page, []])).refresh()

        assert _sample("wskstatus_activation_duplicates") == 1

    async def test_fetch_duration_observed_on_failure(self) -> None:
        before = _sample("wskstatus_fetch_duration_seconds_count", {"direction": "seed"})

        await _store(AsyncMock(side_effect=CommunicationError("down"))).refresh()

        assert _sample("wskstatus_fetch_duration_seconds_count", {"direction": "seed"}) == before + 1
