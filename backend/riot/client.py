"""
Match history lookups against the Riot API.

Match-v5 lives on the regional host (europe/americas/asia); spectator and
status live on the platform host (euw1, na1...). Both go through
``RiotHTTPClient`` and share its retry policy.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError

from shared.exceptions import (
    ConnectivityError,
    UpstreamError,
    UpstreamNotFoundError,
    UpstreamTransientError,
)
from shared.models.domain import MatchDetail
from shared.utils.http_client import RiotHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

MATCH_IDS_PATH = "/lol/match/v5/matches/by-puuid/{puuid}/ids"
MATCH_DETAIL_PATH = "/lol/match/v5/matches/{match_id}"
ACTIVE_GAME_PATH = "/lol/spectator/v5/active-games/by-summoner/{puuid}"
PLATFORM_STATUS_PATH = "/lol/status/v4/platform-data"


class MatchHistoryClient:
    """Latest-match, match-detail and active-game lookups for one player id (PUUID)."""

    def __init__(self, regional: RiotHTTPClient, platform: RiotHTTPClient) -> None:
        self._regional = regional
        self._platform = platform

    async def start(self) -> None:
        await self._regional.start()
        await self._platform.start()

    async def close(self) -> None:
        await self._regional.close()
        await self._platform.close()

    async def fetch_latest_match_id(self, puuid: str) -> Optional[str]:
        """Most recent match id in the player's history, or None if there is none."""
        ids = await self._regional.get_json(
            MATCH_IDS_PATH.format(puuid=puuid),
            params={"start": 0, "count": 1},
            endpoint="match_ids",
        )
        if not isinstance(ids, list):
            raise UpstreamError("Match id list is not a list", path=MATCH_IDS_PATH)
        return str(ids[0]) if ids else None

    async def fetch_match_detail(self, match_id: str) -> MatchDetail:
        data = await self._regional.get_json(
            MATCH_DETAIL_PATH.format(match_id=match_id),
            endpoint="match_detail",
        )
        try:
            return MatchDetail.model_validate(data)
        except ValidationError as exc:
            raise UpstreamError(
                f"Unexpected match payload for {match_id}: {exc}", path=MATCH_DETAIL_PATH
            ) from exc

    async def fetch_active_game_id(self, puuid: str) -> Optional[str]:
        """
        Id of the game the player is in right now, in match-v5 form
        (``EUW1_1234567890``), or None when they are not in a game.
        """
        try:
            data: Any = await self._platform.get_json(
                ACTIVE_GAME_PATH.format(puuid=puuid),
                endpoint="active_game",
            )
        except UpstreamNotFoundError:
            return None
        try:
            return f"{data['platformId']}_{data['gameId']}"
        except (KeyError, TypeError) as exc:
            raise UpstreamError("Active game payload without platformId/gameId", path=ACTIVE_GAME_PATH) from exc

    async def check_connectivity(self) -> None:
        """Single unretried request to the platform host. Raises ``ConnectivityError``."""
        try:
            await self._platform.get_json(PLATFORM_STATUS_PATH, endpoint="status", max_retries=0)
        except UpstreamTransientError as exc:
            raise ConnectivityError(f"Riot API unavailable: {exc}") from exc
        except UpstreamError as exc:
            # The host answered; per-entity calls will surface the real problem.
            logger.warning("connectivity_check_rejected", status=exc.status_code, error=str(exc))
