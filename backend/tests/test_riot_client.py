"""
Tests for match history lookups and Riot ID resolution against a mocked Riot API.
"""
from __future__ import annotations

from typing import Any, Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from shared.config import Settings
from shared.exceptions import (
    ConnectivityError,
    UpstreamError,
    UpstreamNotFoundError,
    UpstreamTransientError,
)
from shared.utils.http_client import RiotHTTPClient
from riot.client import MatchHistoryClient
from riot.identity import IdentityResolver

from conftest import PUUID


class FakeRiot:
    """Routes requests by path; unknown paths are 404."""

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.calls: list[str] = []

    def json(self, path: str, payload: Any, status: int = 200) -> None:
        self.routes[path] = lambda request: httpx.Response(status, json=payload)

    def status(self, path: str, status: int) -> None:
        self.routes[path] = lambda request: httpx.Response(status)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route(request)


@pytest.fixture
def riot() -> FakeRiot:
    return FakeRiot()


@pytest.fixture
async def clients(settings: Settings, riot: FakeRiot):
    transport = httpx.MockTransport(riot.handler)
    regional = RiotHTTPClient(settings.riot_regional_url, "k", settings, transport=transport, sleep=AsyncMock())
    platform = RiotHTTPClient(settings.riot_platform_url, "k", settings, transport=transport, sleep=AsyncMock())
    history = MatchHistoryClient(regional, platform)
    await history.start()
    yield history, IdentityResolver(regional)
    await history.close()


# ── fetch_latest_match_id ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_latest_match_id(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.json(f"/lol/match/v5/matches/by-puuid/{PUUID}/ids", ["EUW1_101", "EUW1_100"])
    assert await history.fetch_latest_match_id(PUUID) == "EUW1_101"


@pytest.mark.asyncio
async def test_latest_match_id_without_history(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.json(f"/lol/match/v5/matches/by-puuid/{PUUID}/ids", [])
    assert await history.fetch_latest_match_id(PUUID) is None


@pytest.mark.asyncio
async def test_latest_match_id_rejects_non_list(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.json(f"/lol/match/v5/matches/by-puuid/{PUUID}/ids", {"matches": []})
    with pytest.raises(UpstreamError):
        await history.fetch_latest_match_id(PUUID)


# ── fetch_match_detail ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_match_detail_parsed(clients, riot: FakeRiot, match_payload) -> None:
    history, _ = clients
    riot.json("/lol/match/v5/matches/EUW1_101", match_payload())
    detail = await history.fetch_match_detail("EUW1_101")
    assert detail.match_id == "EUW1_101"
    assert detail.info.duration_s == 1800
    assert "queueId" not in detail.info.model_dump(by_alias=True)
    player = detail.participant(PUUID)
    assert player is not None
    assert player.largest_multi_kill == 2
    assert player.challenges["killParticipation"] == 0.55


@pytest.mark.asyncio
async def test_match_detail_malformed(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.json("/lol/match/v5/matches/EUW1_101", {"metadata": {}})
    with pytest.raises(UpstreamError):
        await history.fetch_match_detail("EUW1_101")


# ── fetch_active_game_id / connectivity ─────────────────────────────────

@pytest.mark.asyncio
async def test_active_game_id(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.json(
        f"/lol/spectator/v5/active-games/by-summoner/{PUUID}",
        {"gameId": 7123, "platformId": "EUW1"},
    )
    assert await history.fetch_active_game_id(PUUID) == "EUW1_7123"


@pytest.mark.asyncio
async def test_not_in_game_is_none(clients) -> None:
    history, _ = clients
    assert await history.fetch_active_game_id(PUUID) is None


@pytest.mark.asyncio
async def test_connectivity_check_passes(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.json("/lol/status/v4/platform-data", {"id": "EUW1"})
    await history.check_connectivity()


@pytest.mark.asyncio
async def test_connectivity_check_fails_fast_on_unavailable(clients, riot: FakeRiot) -> None:
    history, _ = clients
    riot.status("/lol/status/v4/platform-data", 503)
    with pytest.raises(ConnectivityError):
        await history.check_connectivity()
    assert riot.calls.count("/lol/status/v4/platform-data") == 1


# ── IdentityResolver ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_resolve_and_cache(clients, riot: FakeRiot) -> None:
    _, resolver = clients
    riot.json("/riot/account/v1/accounts/by-riot-id/Ava/EUW", {"puuid": PUUID, "gameName": "Ava"})
    assert await resolver.resolve("Ava#EUW") == PUUID
    assert await resolver.resolve("Ava#EUW") == PUUID
    assert riot.calls.count("/riot/account/v1/accounts/by-riot-id/Ava/EUW") == 1


@pytest.mark.asyncio
async def test_resolve_quotes_spaces(clients, riot: FakeRiot) -> None:
    _, resolver = clients
    riot.json("/riot/account/v1/accounts/by-riot-id/Big Ava/EUW", {"puuid": "p2"})
    assert await resolver.resolve("Big Ava#EUW") == "p2"


@pytest.mark.asyncio
async def test_resolve_unknown_is_not_found_and_not_retried(clients, riot: FakeRiot) -> None:
    _, resolver = clients
    with pytest.raises(UpstreamNotFoundError):
        await resolver.resolve("Ghost#EUW")
    assert len(riot.calls) == 1


@pytest.mark.asyncio
async def test_resolve_transient_uses_retry_policy(clients, riot: FakeRiot, settings: Settings) -> None:
    _, resolver = clients
    riot.status("/riot/account/v1/accounts/by-riot-id/Ava/EUW", 503)
    with pytest.raises(UpstreamTransientError):
        await resolver.resolve("Ava#EUW")
    assert len(riot.calls) == settings.retry_max_attempts + 1


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", ["Ava", "#EUW", "Ava#", ""])
async def test_resolve_rejects_missing_tagline(clients, riot: FakeRiot, bad: str) -> None:
    _, resolver = clients
    with pytest.raises(ValueError):
        await resolver.resolve(bad)
    assert riot.calls == []
