"""
Match summary builder.
Turns a match-v5 record into the notification payload for one tracked player.
"""
from __future__ import annotations

from typing import Optional

from shared.exceptions import MatchDataError
from shared.models.domain import MatchDetail, MatchParticipant, Summary
from shared.models.enums import MatchResult
from shared.utils.logging import get_logger

from riot.champions import ChampionTable

logger = get_logger(__name__)

DEFAULT_MIN_DURATION_S = 300
PERFECT_KDA = "Perfect KDA"

MULTIKILL_LABELS: dict[int, str] = {
    2: "Double Kill",
    3: "Triple Kill",
    4: "Quadra Kill",
    5: "Penta Kill",
}

GAME_MODE_LABELS: dict[str, str] = {
    "CLASSIC": "Summoner's Rift",
}


def kda_label(kills: int, deaths: int, assists: int) -> str:
    if deaths == 0:
        return PERFECT_KDA
    return f"{(kills + assists) / deaths:.2f}"


def multikill_label(largest: int) -> str:
    if largest <= 1:
        return "-"
    return MULTIKILL_LABELS[min(largest, 5)]


def mode_label(game_mode: str) -> str:
    return GAME_MODE_LABELS.get(game_mode, game_mode)


def duration_label(seconds: int) -> str:
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes}:{secs:02d}"


def percent_label(fraction: float) -> str:
    # Half-up, so 12.5% shows as 13%.
    return f"{int(fraction * 100 + 0.5)}%"


def kill_participation(detail: MatchDetail, participant: MatchParticipant) -> float:
    """Fraction of the team's kills the player took part in."""
    value = participant.challenges.get("killParticipation")
    if isinstance(value, (int, float)):
        return float(value)
    team_kills = detail.team_kills(participant.team_id)
    if team_kills == 0:
        return 0.0
    return (participant.kills + participant.assists) / team_kills


class MatchSummaryBuilder:
    """Builds ``Summary`` payloads; matches shorter than the threshold are suppressed."""

    def __init__(
        self,
        champions: ChampionTable | None = None,
        min_duration_s: int = DEFAULT_MIN_DURATION_S,
    ) -> None:
        self._champions = champions or ChampionTable()
        self._min_duration_s = min_duration_s

    def build(self, detail: MatchDetail, puuid: str, display_id: str) -> Optional[Summary]:
        """
        Returns None when the match is too short to be worth reporting (remakes).

        Raises:
            MatchDataError: The player is not among the match participants.
        """
        participant = detail.participant(puuid)
        if participant is None:
            raise MatchDataError(f"{display_id} is not a participant of {detail.match_id}")

        duration = detail.info.duration_s
        if duration < self._min_duration_s:
            logger.info(
                "summary_suppressed",
                match_id=detail.match_id,
                display_id=display_id,
                duration_s=duration,
            )
            return None

        champion_raw = participant.champion_name or str(participant.champion_id)
        return Summary(
            display_id=display_id,
            match_id=detail.match_id,
            result=MatchResult.WON if participant.win else MatchResult.LOST,
            champion=self._champions.display_name(champion_raw),
            kills=participant.kills,
            deaths=participant.deaths,
            assists=participant.assists,
            kda=kda_label(participant.kills, participant.deaths, participant.assists),
            kill_participation=percent_label(kill_participation(detail, participant)),
            multikill=multikill_label(participant.largest_multi_kill),
            mode=mode_label(detail.info.game_mode),
            duration=duration_label(duration),
            ended_at=detail.info.ended_at,
        )
