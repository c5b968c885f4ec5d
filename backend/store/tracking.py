"""
Tracking registry: which players each tenant follows and the last match seen for each.

The store is the only owner of tenant records. Writers (command handlers and the
poll cycle) serialize per tenant through ``tenant_lock``; the poll cycle works on a
deep copy and swaps it in with ``replace_tenant`` so readers never observe a
half-updated tenant.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from shared.exceptions import StoreReadError
from shared.models.domain import TenantRecord, TrackedEntity
from shared.utils.logging import get_logger
from shared.utils.metrics import TRACKED_ENTITIES

from store.backends import PersistenceBackend

logger = get_logger(__name__)


class TrackingStore:
    """In-memory tenant registry backed by a persistence backend."""

    def __init__(self, backend: PersistenceBackend) -> None:
        self._backend = backend
        self._tenants: dict[str, TenantRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._save_lock = asyncio.Lock()

    # ── Persistence ─────────────────────────────────────────────────────

    async def load(self) -> dict[str, TenantRecord]:
        """
        Replace the in-memory registry with the persisted one.

        Never raises: unreadable or malformed state yields an empty registry,
        and individual malformed tenants are skipped.
        """
        try:
            raw = await self._backend.read()
        except StoreReadError as exc:
            logger.warning("store_load_failed", error=str(exc))
            raw = {}

        tenants: dict[str, TenantRecord] = {}
        for tenant, blob in raw.items():
            try:
                tenants[str(tenant)] = TenantRecord.model_validate(blob)
            except ValidationError as exc:
                logger.warning("store_tenant_skipped", tenant=tenant, error=str(exc))

        self._tenants = tenants
        self._update_gauge()
        logger.info("store_loaded", tenants=len(tenants), entities=self.entity_count())
        return tenants

    async def save(self) -> None:
        """
        Persist the whole registry. Raises ``StoreWriteError`` on failure.

        Saves are serialized and each one snapshots the registry only once it
        holds the lock, so the last write to land is always the newest state.
        """
        async with self._save_lock:
            data = {tenant: record.to_json_dict() for tenant, record in self._tenants.items()}
            await self._backend.write(data)
        self._update_gauge()
        logger.debug("store_saved", tenants=len(data))

    # ── Reads ───────────────────────────────────────────────────────────

    def get(self, tenant: str) -> TenantRecord:
        """Return the tenant's record, creating an empty one if absent."""
        record = self._tenants.get(tenant)
        if record is None:
            record = TenantRecord()
            self._tenants[tenant] = record
            logger.info("tenant_created", tenant=tenant)
        return record

    def find(self, tenant: str) -> Optional[TenantRecord]:
        return self._tenants.get(tenant)

    def tenants(self) -> list[str]:
        return list(self._tenants)

    def entity_count(self) -> int:
        return sum(len(r.tracked) for r in self._tenants.values())

    # ── Mutations ───────────────────────────────────────────────────────

    def upsert_entity(self, tenant: str, display_id: str, entity: TrackedEntity) -> None:
        entity.display_id = display_id
        self.get(tenant).tracked[display_id] = entity

    def remove_entity(self, tenant: str, display_id: str) -> bool:
        """Drop an entity. Returns False when it was not tracked."""
        record = self._tenants.get(tenant)
        if record is None or display_id not in record.tracked:
            return False
        del record.tracked[display_id]
        return True

    def set_destination(self, tenant: str, destination: Optional[str]) -> None:
        self.get(tenant).destination = destination

    def replace_tenant(self, tenant: str, record: TenantRecord) -> None:
        """Swap in a whole tenant record in one step."""
        self._tenants[tenant] = record

    @asynccontextmanager
    async def tenant_lock(self, tenant: str) -> AsyncIterator[None]:
        """Serialize read-modify-write sequences on one tenant."""
        lock = self._locks.setdefault(tenant, asyncio.Lock())
        async with lock:
            yield

    def _update_gauge(self) -> None:
        TRACKED_ENTITIES.set(self.entity_count())
