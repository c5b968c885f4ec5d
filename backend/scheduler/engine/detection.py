"""
Match completion detection strategies.

``MatchIdDiffStrategy`` compares the newest match id in a player's history with
the stored pointer. ``ActiveGameStrategy`` watches the spectator endpoint instead
and reports a game once it stops being the player's active game. Both work on a
``TrackedEntity`` and only touch the pointer through ``commit``.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional

from shared.config import DetectionStrategyName
from shared.models.domain import TrackedEntity
from shared.utils.logging import get_logger

from riot.client import MatchHistoryClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class Detection:
    """A finished match that should be summarized for an entity."""
    match_id: str
    next_active_game_id: Optional[str] = None


class DetectionStrategy(abc.ABC):
    name: DetectionStrategyName

    def __init__(self, history: MatchHistoryClient) -> None:
        self._history = history

    @abc.abstractmethod
    async def detect(self, entity: TrackedEntity) -> Optional[Detection]:
        """Return the match to report, or None if nothing new finished."""

    def commit(self, entity: TrackedEntity, detection: Detection) -> None:
        """Record that ``detection`` has been handled."""
        entity.last_match_id = detection.match_id


class MatchIdDiffStrategy(DetectionStrategy):
    name = DetectionStrategyName.MATCH_ID

    async def detect(self, entity: TrackedEntity) -> Optional[Detection]:
        if entity.internal_id is None:
            return None
        latest = await self._history.fetch_latest_match_id(entity.internal_id)
        if latest is None or latest == entity.last_match_id:
            return None
        return Detection(match_id=latest)


class ActiveGameStrategy(DetectionStrategy):
    name = DetectionStrategyName.ACTIVE_GAME

    async def detect(self, entity: TrackedEntity) -> Optional[Detection]:
        if entity.internal_id is None:
            return None
        active = await self._history.fetch_active_game_id(entity.internal_id)
        registered = entity.active_game_id

        if registered is None:
            if active is not None:
                entity.active_game_id = active
                logger.info("entity_entered_game", display_id=entity.display_id, game_id=active)
            return None

        if active == registered:
            return None

        if registered == entity.last_match_id:
            entity.active_game_id = active
            return None

        return Detection(match_id=registered, next_active_game_id=active)

    def commit(self, entity: TrackedEntity, detection: Detection) -> None:
        super().commit(entity, detection)
        entity.active_game_id = detection.next_active_game_id


def build_strategy(name: DetectionStrategyName, history: MatchHistoryClient) -> DetectionStrategy:
    if name == DetectionStrategyName.ACTIVE_GAME:
        return ActiveGameStrategy(history)
    return MatchIdDiffStrategy(history)
