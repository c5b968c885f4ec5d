"""
Pydantic v2 domain models shared across Riftwatch.
Covers the persisted tracking registry, the subset of Riot match-v5 payloads
the notifier reads, and the notification summary.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.models.enums import CycleOutcome, EntityCheckResult, MatchResult

RIOT_ID_SEPARATOR = "#"


def is_riot_id(display_id: str) -> bool:
    """True when ``display_id`` has a non-empty game name and tagline."""
    name, sep, tag = display_id.partition(RIOT_ID_SEPARATOR)
    return bool(sep and name.strip() and tag.strip())


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UpstreamModel(DomainModel):
    """Riot payloads carry many more fields than we read."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Tracking registry ───────────────────────────────────────────────────
class TrackedEntity(DomainModel):
    """A player being watched. ``display_id`` is the registry key and is not stored inline."""
    display_id: str = Field(default="", exclude=True)
    internal_id: Optional[str] = Field(default=None, alias="internalId")
    last_match_id: Optional[str] = Field(default=None, alias="lastMatchId")
    active_game_id: Optional[str] = Field(default=None, alias="activeGameId")

    def to_json_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "internalId": self.internal_id,
            "lastMatchId": self.last_match_id,
        }
        if self.active_game_id is not None:
            data["activeGameId"] = self.active_game_id
        return data


class TenantRecord(DomainModel):
    destination: Optional[str] = None
    tracked: dict[str, TrackedEntity] = Field(default_factory=dict, alias="trackedEntities")

    @model_validator(mode="after")
    def fill_display_ids(self) -> "TenantRecord":
        for display_id, entity in self.tracked.items():
            entity.display_id = display_id
        return self

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "trackedEntities": {k: e.to_json_dict() for k, e in self.tracked.items()},
            "destination": self.destination,
        }


# ── Riot match-v5 ───────────────────────────────────────────────────────
class MatchParticipant(UpstreamModel):
    puuid: str
    champion_name: str = Field(default="", alias="championName")
    champion_id: int = Field(default=0, alias="championId")
    team_id: int = Field(default=0, alias="teamId")
    win: bool = False
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    largest_multi_kill: int = Field(default=0, alias="largestMultiKill")
    challenges: dict[str, Any] = Field(default_factory=dict)


class MatchMetadata(UpstreamModel):
    match_id: str = Field(alias="matchId")


class MatchInfo(UpstreamModel):
    game_duration: int = Field(alias="gameDuration")
    game_mode: str = Field(default="", alias="gameMode")
    game_end_timestamp: Optional[int] = Field(default=None, alias="gameEndTimestamp")
    participants: list[MatchParticipant] = Field(default_factory=list)

    @property
    def duration_s(self) -> int:
        # Before patch 11.20 gameDuration was reported in milliseconds and
        # gameEndTimestamp did not exist.
        if self.game_end_timestamp is None:
            return self.game_duration // 1000
        return self.game_duration

    @property
    def ended_at(self) -> Optional[datetime]:
        if self.game_end_timestamp is None:
            return None
        return datetime.fromtimestamp(self.game_end_timestamp / 1000, tz=timezone.utc)


class MatchDetail(UpstreamModel):
    metadata: MatchMetadata
    info: MatchInfo

    @property
    def match_id(self) -> str:
        return self.metadata.match_id

    def participant(self, puuid: str) -> Optional[MatchParticipant]:
        for p in self.info.participants:
            if p.puuid == puuid:
                return p
        return None

    def team_kills(self, team_id: int) -> int:
        return sum(p.kills for p in self.info.participants if p.team_id == team_id)


# ── Notification ────────────────────────────────────────────────────────
class Summary(DomainModel):
    """Notification-ready description of one completed match for one player."""
    display_id: str
    match_id: str
    result: MatchResult
    champion: str
    kills: int
    deaths: int
    assists: int
    kda: str
    kill_participation: str
    multikill: str
    mode: str
    duration: str
    ended_at: Optional[datetime] = None


# ── Poll cycle reporting ────────────────────────────────────────────────
class CycleReport(DomainModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcome: CycleOutcome = CycleOutcome.COMPLETED
    results: dict[EntityCheckResult, int] = Field(default_factory=dict)

    def record(self, result: EntityCheckResult) -> None:
        self.results[result] = self.results.get(result, 0) + 1

    def count(self, result: EntityCheckResult) -> int:
        return self.results.get(result, 0)
