"""Integration tests for the FastAPI web adapter.

Uses TestClient with a stubbed fetcher, so no real API calls are made.
"""

from collections.abc import Generator
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from factories import FIXED_NOW, epoch_ms, make_record
from fastapi.testclient import TestClient
from pydantic import SecretStr

from wskstatus.activations.buckets import TimeFrame
from wskstatus.activations.store import ActivationStore
from wskstatus.api.main import create_app, data
from wskstatus.config import ConfigurationError, Connection, Settings

CONNECTION = Connection(base="openwhisk.test", namespace="guest", auth=SecretStr("user:key"))


def _recent_records() -> list:
    now = datetime.now().astimezone()
    return [
        make_record("a1", epoch_ms(now - timedelta(minutes=5)), name="hot", duration=40),
        make_record("a2", epoch_ms(now - timedelta(minutes=65)), name="hot", duration=60),
        make_record("a3", epoch_ms(now - timedelta(minutes=125)), name="cold", duration=10),
    ]


@pytest.fixture
def fetcher() -> AsyncMock:
    return AsyncMock(side_effect=[_recent_records(), []])


@pytest.fixture
def client(mock_settings: Settings, fetcher: AsyncMock) -> Generator[TestClient]:  # noqa: ARG001
    app = create_app(CONNECTION, TimeFrame.HOURLY, fetcher=fetcher)
    with TestClient(app) as tc:
        yield tc


@pytest.mark.integration
class TestStartup:
    def test_initial_refresh_loads_store(self, client: TestClient, fetcher: AsyncMock) -> None:
        assert fetcher.await_count == 2
        assert len(client.app.state.store.items) == 3  # type: ignore[attr-defined]

    def test_store_uses_window_retention(self, client: TestClient) -> None:
        store = client.app.state.store  # type: ignore[attr-defined]
        span = datetime.now().astimezone() - store.min_retention
        assert timedelta(hours=79) <= span <= timedelta(hours=81)

    @pytest.mark.usefixtures("mock_settings")
    def test_missing_configuration_aborts_startup(self) -> None:
        app = create_app(fetcher=AsyncMock(return_value=[]))
        with pytest.raises(ConfigurationError), TestClient(app):
            pass


@pytest.mark.integration
class TestDataEndpoint:
    def test_two_traces(self, client: TestClient) -> None:
        resp = client.get("/data/")
        assert resp.status_code == 200
        traces = resp.json()
        assert [t["name"] for t in traces] == ["Activations", "Average Duration"]
        assert traces[0]["type"] == "line"
        assert traces[1]["type"] == "bar"

    def test_x_axis_counts_down_to_zero(self, client: TestClient) -> None:
        activations = client.get("/data/").json()[0]
        assert activations["x"][-1] == 0
        assert activations["x"][0] == -(len(activations["x"]) - 1)
        assert len(activations["x"]) == len(activations["y"])

    def test_counts_all_records(self, client: TestClient) -> None:
        activations = client.get("/data/").json()[0]
        assert sum(activations["y"]) == 3


@pytest.mark.integration
class TestSummaryEndpoint:
    def test_summary_shape(self, client: TestClient) -> None:
        resp = client.get("/summary")
        assert resp.status_code == 200
        body = resp.json()
        assert body["frame"] == "hourly"
        assert body["held"] == 3
        assert body["duplicates"] == 0
        assert body["last_refresh"] is not None
        assert body["top"][0] == {"name": "hot", "occurrences": 2, "average": 50}
        assert [r["id"] for r in body["last"]] == ["a1", "a2", "a3"]
        assert "logs" not in body["last"][0]


@pytest.mark.integration
class TestHealthEndpoint:
    def test_healthy_after_refresh(self, client: TestClient) -> None:
        body = client.get("/health").json()
        assert body == {"status": "healthy", "namespace": "guest", "held": 3}


@pytest.mark.integration
class TestMetricsEndpoint:
    def test_exposes_store_metrics(self, client: TestClient) -> None:
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "wskstatus_activations_held" in resp.text
        assert "wskstatus_fetch_calls_total" in resp.text


class TestDataBinning:
    async def test_series_share_one_binning_across_hour_boundary(self) -> None:
        before = FIXED_NOW.replace(minute=59, second=59)
        after = before + timedelta(seconds=2)
        store = ActivationStore(
            "openwhisk.test",
            "user:key",
            "guest",
            fetcher=AsyncMock(return_value=[]),
            min_retention=FIXED_NOW - timedelta(hours=3),
            clock=MagicMock(side_effect=[before, after]),
        )
        store.items = [make_record("a1", epoch_ms(FIXED_NOW - timedelta(minutes=10)), duration=80)]
        request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(store=store)))

        activations, durations = await data(request)  # type: ignore[arg-type]

        assert len(activations.y) == len(durations.y) == len(activations.x) == 4
        assert durations.y[-1] == 100
