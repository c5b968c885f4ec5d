"""Shared fixtures: settings without env/.env lookups and Riot payload factories."""
from __future__ import annotations

from typing import Any, Callable

import pytest

from shared.config import Settings

PUUID = "puuid-ava"
CHANNEL_ID = "112233445566778899"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        riot_api_key="RGAPI-test",
        riot_regional_url="https://europe.test",
        riot_platform_url="https://euw1.test",
        discord_bot_token="bot-token",
        discord_api_url="https://discord.test/api/v10",
        store_path=str(tmp_path / "tracking.json"),
        retry_max_attempts=3,
        retry_base_delay_s=2.0,
        issue_spacing_s=0.0,
        connectivity_check_enabled=False,
        metrics_enabled=False,
    )


def _participant(
    puuid: str,
    team_id: int,
    *,
    champion: str = "Ahri",
    win: bool = False,
    kills: int = 0,
    deaths: int = 0,
    assists: int = 0,
    multikill: int = 0,
    kill_participation: float | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "puuid": puuid,
        "championName": champion,
        "championId": 103,
        "teamId": team_id,
        "win": win,
        "kills": kills,
        "deaths": deaths,
        "assists": assists,
        "largestMultiKill": multikill,
        "challenges": {},
    }
    if kill_participation is not None:
        data["challenges"]["killParticipation"] = kill_participation
    return data


@pytest.fixture
def match_payload() -> Callable[..., dict[str, Any]]:
    """Factory for match-v5 detail payloads centred on one player."""

    def factory(
        match_id: str = "EUW1_101",
        puuid: str = PUUID,
        *,
        duration: int = 1800,
        win: bool = True,
        kills: int = 10,
        deaths: int = 2,
        assists: int = 8,
        kill_participation: float | None = 0.55,
        multikill: int = 2,
        game_mode: str = "CLASSIC",
        champion: str = "MonkeyKing",
        end_timestamp: int | None = 1_700_000_000_000,
        include_player: bool = True,
    ) -> dict[str, Any]:
        participants = [
            _participant("ally-1", 100, kills=12, win=win),
            _participant("enemy-1", 200, kills=9, win=not win),
        ]
        if include_player:
            participants.insert(
                0,
                _participant(
                    puuid,
                    100,
                    champion=champion,
                    win=win,
                    kills=kills,
                    deaths=deaths,
                    assists=assists,
                    multikill=multikill,
                    kill_participation=kill_participation,
                ),
            )
        info: dict[str, Any] = {
            "gameDuration": duration,
            "gameMode": game_mode,
            "queueId": 420,
            "participants": participants,
        }
        if end_timestamp is not None:
            info["gameEndTimestamp"] = end_timestamp
        return {"metadata": {"matchId": match_id, "participants": [p["puuid"] for p in participants]}, "info": info}

    return factory
