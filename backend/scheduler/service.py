"""
Poll cycle scheduler for Riftwatch.
Fires a tick every ``poll_interval_s``; each accepted tick scans every tenant
with a destination, detects finished matches for its tracked players, posts a
summary and advances the match pointer, then persists the registry once.
Ticks that arrive while a cycle is still running are dropped.
"""
from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timezone
from typing import Optional

from shared.config import Settings, StoreBackend, get_settings
from shared.exceptions import (
    ConnectivityError,
    MatchDataError,
    StoreWriteError,
    UpstreamError,
    UpstreamNotFoundError,
)
from shared.models.domain import CycleReport, TenantRecord
from shared.models.enums import CycleOutcome, CycleState, DispatchOutcome, EntityCheckResult
from shared.utils.http_client import RiotHTTPClient
from shared.utils.logging import cycle_context, get_logger, setup_logging
from shared.utils.metrics import (
    ENTITY_CHECKS,
    POLL_CYCLE_DURATION,
    POLL_CYCLE_RUNNING,
    POLL_CYCLES,
    atrack_latency,
    start_metrics_server,
)
from shared.utils.redis_manager import RedisManager

from builder.summary import MatchSummaryBuilder
from notify.dispatcher import DiscordDispatcher
from riot.champions import ChampionTable
from riot.client import MatchHistoryClient
from riot.identity import IdentityResolver
from scheduler.engine.detection import DetectionStrategy, MatchIdDiffStrategy, build_strategy
from scheduler.engine.throttle import IssueThrottle
from store.backends import JsonFileBackend, RedisBackend
from store.tracking import TrackingStore

logger = get_logger(__name__)

EVICTION_NOTICE = "Summoner {display_id} doesn't exist. No longer tracking them."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PollCycleScheduler:
    """
    Two-state machine (IDLE/RUNNING) driving poll cycles.

    Per-entity failures are isolated: they are logged, counted in the cycle
    report and never abort sibling entities or tenants. The state always
    returns to IDLE, including when the cycle raises.
    """

    def __init__(
        self,
        store: TrackingStore,
        resolver: IdentityResolver,
        history: MatchHistoryClient,
        builder: MatchSummaryBuilder,
        dispatcher: DiscordDispatcher,
        strategy: DetectionStrategy | None = None,
        throttle: IssueThrottle | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._resolver = resolver
        self._history = history
        self._builder = builder
        self._dispatcher = dispatcher
        self._strategy = strategy or MatchIdDiffStrategy(history)
        self._throttle = throttle or IssueThrottle(self._settings.issue_spacing_s)
        self._state = CycleState.IDLE
        self._shutdown = asyncio.Event()
        self._inflight: set[asyncio.Task[Optional[CycleReport]]] = set()
        self.last_report: Optional[CycleReport] = None
        self._cycle_seq = 0

    @property
    def state(self) -> CycleState:
        return self._state

    # ── Cycle ───────────────────────────────────────────────────────────

    async def tick(self) -> Optional[CycleReport]:
        """Run one cycle if IDLE. Returns None when the tick was dropped."""
        if self._state is CycleState.RUNNING:
            logger.info("poll_tick_dropped")
            return None

        self._state = CycleState.RUNNING
        self._cycle_seq += 1
        POLL_CYCLE_RUNNING.set(1)
        try:
            with cycle_context(self._cycle_seq):
                report = await self._run_cycle()
        finally:
            self._state = CycleState.IDLE
            POLL_CYCLE_RUNNING.set(0)

        self.last_report = report
        POLL_CYCLES.labels(outcome=report.outcome.value).inc()
        return report

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=_utcnow())

        async with atrack_latency(POLL_CYCLE_DURATION):
            if self._settings.connectivity_check_enabled:
                try:
                    await self._history.check_connectivity()
                except ConnectivityError as exc:
                    logger.warning("poll_cycle_offline", error=str(exc))
                    report.outcome = CycleOutcome.SKIPPED_OFFLINE
                    report.finished_at = _utcnow()
                    return report

            tenants = [
                tenant
                for tenant in self._store.tenants()
                if (record := self._store.find(tenant)) is not None and record.destination
            ]
            results = await asyncio.gather(
                *(self._poll_tenant(tenant, report) for tenant in tenants),
                return_exceptions=True,
            )
            for tenant, result in zip(tenants, results):
                if isinstance(result, BaseException):
                    logger.error("tenant_poll_failed", tenant=tenant, error=repr(result))

            try:
                await self._store.save()
            except StoreWriteError as exc:
                logger.error("poll_cycle_save_failed", error=str(exc))
                report.outcome = CycleOutcome.SAVE_FAILED

        report.finished_at = _utcnow()
        logger.info(
            "poll_cycle_completed",
            outcome=report.outcome.value,
            tenants=len(tenants),
            **{result.value: count for result, count in report.results.items()},
        )
        return report

    async def _poll_tenant(self, tenant: str, report: CycleReport) -> None:
        async with self._store.tenant_lock(tenant):
            record = self._store.find(tenant)
            if record is None or not record.destination:
                return
            working = record.model_copy(deep=True)

            display_ids = list(working.tracked)
            tasks: list[asyncio.Task[EntityCheckResult]] = []
            for display_id in display_ids:
                await self._throttle.wait()
                tasks.append(
                    asyncio.create_task(
                        self._poll_entity(tenant, working, display_id),
                        name=f"poll:{tenant}:{display_id}",
                    )
                )

            results = await asyncio.gather(*tasks, return_exceptions=True)
            for display_id, result in zip(display_ids, results):
                if isinstance(result, BaseException):
                    logger.error(
                        "entity_poll_crashed",
                        tenant=tenant,
                        display_id=display_id,
                        error=repr(result),
                    )
                    result = EntityCheckResult.FAILED
                report.record(result)
                ENTITY_CHECKS.labels(result=result.value).inc()

            self._store.replace_tenant(tenant, working)

    async def _poll_entity(
        self, tenant: str, working: TenantRecord, display_id: str
    ) -> EntityCheckResult:
        entity = working.tracked[display_id]
        log = logger.bind(tenant=tenant, display_id=display_id)

        try:
            if entity.internal_id is None:
                try:
                    entity.internal_id = await self._resolver.resolve(display_id)
                except (UpstreamNotFoundError, ValueError):
                    working.tracked.pop(display_id, None)
                    log.warning("entity_evicted")
                    await self._dispatcher.send_notice(
                        working.destination, EVICTION_NOTICE.format(display_id=display_id)
                    )
                    return EntityCheckResult.EVICTED

            detection = await self._strategy.detect(entity)
            if detection is None:
                return EntityCheckResult.UNCHANGED

            detail = await self._history.fetch_match_detail(detection.match_id)
            summary = self._builder.build(detail, entity.internal_id, display_id)
            if summary is None:
                self._strategy.commit(entity, detection)
                return EntityCheckResult.SUPPRESSED

            outcome = await self._dispatcher.send(working.destination, summary)
            if outcome is not DispatchOutcome.OK:
                log.warning("entity_dispatch_failed", match_id=detection.match_id)
                return EntityCheckResult.DISPATCH_FAILED

            self._strategy.commit(entity, detection)
            log.info("entity_notified", match_id=detection.match_id)
            return EntityCheckResult.NOTIFIED

        except (UpstreamError, ConnectivityError) as exc:
            log.warning("entity_upstream_failed", error=str(exc), error_type=type(exc).__name__)
            return EntityCheckResult.FAILED
        except MatchDataError as exc:
            log.error("entity_match_data_error", error=str(exc))
            return EntityCheckResult.FAILED

    # ── Timer ───────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Fire a tick every ``poll_interval_s`` until shutdown is requested."""
        interval = self._settings.poll_interval_s
        logger.info("scheduler_started", interval_s=interval, strategy=self._strategy.name.value)
        try:
            while not self._shutdown.is_set():
                task = asyncio.create_task(self._guarded_tick())
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
                try:
                    await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            for task in list(self._inflight):
                task.cancel()
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
            logger.info("scheduler_stopped")

    async def _guarded_tick(self) -> Optional[CycleReport]:
        try:
            return await self.tick()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("scheduler_tick_error", error=str(exc), exc_info=True)
            return None

    def request_shutdown(self) -> None:
        self._shutdown.set()


class Runtime:
    """All long-lived collaborators of one notifier process."""

    def __init__(
        self,
        settings: Settings,
        store: TrackingStore,
        history: MatchHistoryClient,
        resolver: IdentityResolver,
        dispatcher: DiscordDispatcher,
        scheduler: PollCycleScheduler,
        redis: RedisManager | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.history = history
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.redis = redis

    async def close(self) -> None:
        await self.history.close()
        await self.dispatcher.close()
        if self.redis is not None:
            await self.redis.disconnect()


async def create_runtime(settings: Settings | None = None) -> Runtime:
    """Build, connect and load everything the scheduler and commands need."""
    settings = settings or get_settings()

    redis: RedisManager | None = None
    if settings.store_backend == StoreBackend.REDIS:
        redis = RedisManager(settings)
        await redis.connect()
        store = TrackingStore(RedisBackend(redis))
    else:
        store = TrackingStore(JsonFileBackend(settings.store_path))
    await store.load()

    if settings.default_tenant and settings.default_destination:
        record = store.get(settings.default_tenant)
        if record.destination is None:
            store.set_destination(settings.default_tenant, settings.default_destination)

    regional = RiotHTTPClient(settings.riot_regional_url, settings.riot_api_key, settings)
    platform = RiotHTTPClient(settings.riot_platform_url, settings.riot_api_key, settings)
    history = MatchHistoryClient(regional, platform)
    await history.start()
    resolver = IdentityResolver(regional)

    dispatcher = DiscordDispatcher(settings)
    await dispatcher.start()

    champions = await ChampionTable.load(settings)
    builder = MatchSummaryBuilder(champions, settings.min_match_duration_s)

    scheduler = PollCycleScheduler(
        store,
        resolver,
        history,
        builder,
        dispatcher,
        strategy=build_strategy(settings.detection_strategy, history),
        settings=settings,
    )
    return Runtime(settings, store, history, resolver, dispatcher, scheduler, redis)


async def main() -> None:
    """Headless scheduler entrypoint (no command API)."""
    settings = get_settings()
    setup_logging("scheduler", settings)
    start_metrics_server(settings)

    runtime = await create_runtime(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runtime.scheduler.request_shutdown)

    try:
        await runtime.scheduler.run()
    finally:
        await runtime.close()


if __name__ == "__main__":
    asyncio.run(main())
