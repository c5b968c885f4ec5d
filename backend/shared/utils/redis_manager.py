"""
Redis connection manager for Riftwatch.
Provides the async connection pool and the tracking-registry hash helpers
used by the Redis store backend.
"""
from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
TRACKING_KEY = "riftwatch:tracking:tenants"


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            self._pool = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Tracking registry ───────────────────────────────────────────────
    async def read_tenant_blobs(self) -> dict[str, str]:
        """Return every tenant's serialized record keyed by tenant id."""
        return await self.client.hgetall(TRACKING_KEY)

    async def replace_tenant_blobs(self, blobs: dict[str, str]) -> None:
        """Atomically replace the whole registry hash."""
        pipe = self.client.pipeline(transaction=True)
        pipe.delete(TRACKING_KEY)
        if blobs:
            pipe.hset(TRACKING_KEY, mapping=blobs)
        await pipe.execute()
