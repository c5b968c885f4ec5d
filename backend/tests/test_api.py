"""API route tests. The command surface is replaced through dependency overrides; no upstream services needed."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import get_commands, get_scheduler
from shared.exceptions import StoreWriteError, UpstreamError, UpstreamTransientError
from shared.models.domain import CycleReport
from shared.models.enums import (
    CycleState,
    DestinationResult,
    EntityCheckResult,
    TrackResult,
    UntrackResult,
)

from conftest import CHANNEL_ID


@pytest.fixture
def commands() -> MagicMock:
    c = MagicMock()
    c.track = AsyncMock(return_value=TrackResult.TRACKING)
    c.untrack = AsyncMock(return_value=UntrackResult.UNTRACKED)
    c.list_tracked = AsyncMock(return_value=["Ava#EUW", "bo#NA1"])
    c.set_destination = AsyncMock(return_value=DestinationResult.SET)
    return c


@pytest.fixture
def client(commands: MagicMock) -> TestClient:
    """Test client with lifespan disabled so routes can be tested without Riot or Discord."""
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_commands] = lambda: commands
    app.dependency_overrides[get_scheduler] = lambda: None
    with TestClient(app) as c:
        yield c


def test_health_returns_ok(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data.get("status") == "ok"
    assert data.get("service") == "riftwatch"


def test_health_returns_json(client: TestClient) -> None:
    """GET /health returns application/json."""
    r = client.get("/health")
    assert r.headers.get("content-type", "").startswith("application/json")


def test_request_id_is_echoed(client: TestClient) -> None:
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_list_tracked(client: TestClient, commands: MagicMock) -> None:
    r = client.get("/v1/tenants/guild-1/tracked")
    assert r.status_code == 200
    assert r.json() == {"tenant": "guild-1", "tracked": ["Ava#EUW", "bo#NA1"]}
    commands.list_tracked.assert_awaited_once_with("guild-1")


def test_track(client: TestClient, commands: MagicMock) -> None:
    r = client.post("/v1/tenants/guild-1/tracked", json={"display_id": "Ava#EUW"})
    assert r.status_code == 200
    assert r.json()["result"] == "tracking"
    commands.track.assert_awaited_once_with("guild-1", "Ava#EUW")


@pytest.mark.parametrize(
    "result", [TrackResult.ALREADY_TRACKED, TrackResult.NOT_FOUND, TrackResult.INVALID_ID]
)
def test_track_result_variants(client: TestClient, commands: MagicMock, result: TrackResult) -> None:
    commands.track.return_value = result
    r = client.post("/v1/tenants/guild-1/tracked", json={"display_id": "Ava#EUW"})
    assert r.status_code == 200
    assert r.json()["result"] == result.value


def test_track_requires_display_id(client: TestClient) -> None:
    r = client.post("/v1/tenants/guild-1/tracked", json={})
    assert r.status_code == 422


def test_untrack_encoded_riot_id(client: TestClient, commands: MagicMock) -> None:
    r = client.delete("/v1/tenants/guild-1/tracked/Ava%23EUW")
    assert r.status_code == 200
    assert r.json()["result"] == "untracked"
    commands.untrack.assert_awaited_once_with("guild-1", "Ava#EUW")


def test_set_destination(client: TestClient, commands: MagicMock) -> None:
    r = client.put("/v1/tenants/guild-1/destination", json={"destination": CHANNEL_ID})
    assert r.status_code == 200
    assert r.json() == {
        "tenant": "guild-1",
        "result": "set",
        "display_id": None,
        "destination": CHANNEL_ID,
    }


def test_upstream_unavailable_is_503(client: TestClient, commands: MagicMock) -> None:
    commands.track.side_effect = UpstreamTransientError("down", status_code=503, attempts=5)
    r = client.post("/v1/tenants/guild-1/tracked", json={"display_id": "Ava#EUW"})
    assert r.status_code == 503
    assert r.json()["error"] == "upstream_unavailable"


def test_upstream_error_is_502(client: TestClient, commands: MagicMock) -> None:
    commands.track.side_effect = UpstreamError("forbidden", status_code=403)
    r = client.post("/v1/tenants/guild-1/tracked", json={"display_id": "Ava#EUW"})
    assert r.status_code == 502


def test_store_failure_is_500(client: TestClient, commands: MagicMock) -> None:
    commands.untrack.side_effect = StoreWriteError("disk full")
    r = client.delete("/v1/tenants/guild-1/tracked/Ava%23EUW")
    assert r.status_code == 500
    assert r.json()["error"] == "store_write_failed"


def test_status_without_scheduler(client: TestClient) -> None:
    r = client.get("/v1/status")
    assert r.json() == {"scheduler": None, "last_cycle": None}


def test_status_with_scheduler(client: TestClient) -> None:
    report = CycleReport(started_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    report.record(EntityCheckResult.NOTIFIED)
    scheduler = MagicMock()
    scheduler.state = CycleState.IDLE
    scheduler.last_report = report
    client.app.dependency_overrides[get_scheduler] = lambda: scheduler

    data = client.get("/v1/status").json()
    assert data["scheduler"] == "idle"
    assert data["last_cycle"]["outcome"] == "completed"
    assert data["last_cycle"]["results"] == {"notified": 1}
