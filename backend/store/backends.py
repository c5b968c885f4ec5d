"""
Persistence backends for the tracking registry.

Both backends move plain JSON-compatible dicts keyed by tenant id; validation
into domain models happens in ``store.tracking``. Writes always replace the
whole registry so a failed write never leaves a half-updated snapshot.
"""
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from redis.exceptions import RedisError

from shared.exceptions import StoreReadError, StoreWriteError
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


class PersistenceBackend(Protocol):
    async def read(self) -> dict[str, Any]:
        ...

    async def write(self, data: dict[str, dict[str, Any]]) -> None:
        ...


class JsonFileBackend:
    """Single JSON file, replaced through a temp file + ``os.replace``."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    async def read(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_sync)

    async def write(self, data: dict[str, dict[str, Any]]) -> None:
        await asyncio.to_thread(self._write_sync, data)

    def _read_sync(self) -> dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreReadError(f"Cannot read {self._path}: {exc}") from exc

        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise StoreReadError(f"Malformed JSON in {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreReadError(f"Expected a JSON object in {self._path}")
        return data

    def _write_sync(self, data: dict[str, dict[str, Any]]) -> None:
        directory = self._path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
            raise StoreWriteError(f"Cannot write {self._path}: {exc}") from exc


class RedisBackend:
    """One hash field per tenant; the whole hash is swapped in a MULTI/EXEC."""

    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def read(self) -> dict[str, Any]:
        try:
            blobs = await self._redis.read_tenant_blobs()
        except RedisError as exc:
            raise StoreReadError(f"Cannot read tracking hash: {exc}") from exc

        data: dict[str, Any] = {}
        for tenant, blob in blobs.items():
            try:
                data[tenant] = json.loads(blob)
            except ValueError:
                logger.warning("store_tenant_blob_malformed", tenant=tenant)
        return data

    async def write(self, data: dict[str, dict[str, Any]]) -> None:
        blobs = {tenant: json.dumps(record, sort_keys=True) for tenant, record in data.items()}
        try:
            await self._redis.replace_tenant_blobs(blobs)
        except RedisError as exc:
            raise StoreWriteError(f"Cannot write tracking hash: {exc}") from exc
