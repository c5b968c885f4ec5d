"""
Command surface used by the chat front-end.

Each mutation runs under the tenant lock shared with the poll cycle and is
persisted before it returns. If persisting fails the tenant record is rolled
back and ``StoreWriteError`` propagates.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from shared.exceptions import ConnectivityError, StoreWriteError, UpstreamError, UpstreamNotFoundError
from shared.models.domain import TrackedEntity, is_riot_id
from shared.models.enums import DestinationResult, TrackResult, UntrackResult
from shared.utils.logging import get_logger

from notify.dispatcher import DiscordDispatcher
from riot.client import MatchHistoryClient
from riot.identity import IdentityResolver
from store.tracking import TrackingStore

logger = get_logger(__name__)


class TrackingCommands:
    def __init__(
        self,
        store: TrackingStore,
        resolver: IdentityResolver,
        history: MatchHistoryClient,
        dispatcher: DiscordDispatcher,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._history = history
        self._dispatcher = dispatcher

    @asynccontextmanager
    async def _mutation(self, tenant: str) -> AsyncIterator[None]:
        async with self._store.tenant_lock(tenant):
            previous = self._store.get(tenant).model_copy(deep=True)
            yield
            try:
                await self._store.save()
            except StoreWriteError:
                self._store.replace_tenant(tenant, previous)
                logger.error("command_save_failed", tenant=tenant)
                raise

    async def track(self, tenant: str, display_id: str) -> TrackResult:
        """
        Start tracking a Riot ID. The match pointer is seeded with the player's
        current latest match so only games finished from now on are reported.

        Raises:
            UpstreamTransientError: The Riot API stayed unavailable.
            StoreWriteError: The registry could not be persisted.
        """
        display_id = display_id.strip()
        if not is_riot_id(display_id):
            return TrackResult.INVALID_ID

        if display_id in self._store.get(tenant).tracked:
            return TrackResult.ALREADY_TRACKED

        try:
            puuid = await self._resolver.resolve(display_id)
        except UpstreamNotFoundError:
            return TrackResult.NOT_FOUND

        latest: Optional[str] = None
        try:
            latest = await self._history.fetch_latest_match_id(puuid)
        except (UpstreamError, ConnectivityError) as exc:
            logger.warning("track_seed_failed", tenant=tenant, display_id=display_id, error=str(exc))

        async with self._mutation(tenant):
            if display_id in self._store.get(tenant).tracked:
                return TrackResult.ALREADY_TRACKED
            self._store.upsert_entity(
                tenant,
                display_id,
                TrackedEntity(internal_id=puuid, last_match_id=latest),
            )

        logger.info("entity_tracked", tenant=tenant, display_id=display_id)
        return TrackResult.TRACKING

    async def untrack(self, tenant: str, display_id: str) -> UntrackResult:
        display_id = display_id.strip()
        async with self._mutation(tenant):
            removed = self._store.remove_entity(tenant, display_id)
        if not removed:
            return UntrackResult.NOT_TRACKED
        self._resolver.forget(display_id)
        logger.info("entity_untracked", tenant=tenant, display_id=display_id)
        return UntrackResult.UNTRACKED

    async def list_tracked(self, tenant: str) -> list[str]:
        record = self._store.find(tenant)
        if record is None:
            return []
        return sorted(record.tracked, key=str.lower)

    async def set_destination(self, tenant: str, destination: str) -> DestinationResult:
        destination = destination.strip()
        if not await self._dispatcher.resolve_destination(destination):
            return DestinationResult.INVALID_DESTINATION
        async with self._mutation(tenant):
            self._store.set_destination(tenant, destination)
        logger.info("destination_set", tenant=tenant, destination=destination)
        return DestinationResult.SET
