"""Tracking store persistence: JSON file format, tolerant loads, atomic writes, Redis backend."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.exceptions import StoreWriteError
from shared.models.domain import TrackedEntity
from store.backends import JsonFileBackend, RedisBackend
from store.tracking import TrackingStore

PERSISTED = {
    "guild-1": {
        "trackedEntities": {
            "Ava#EUW": {"internalId": "puuid-ava", "lastMatchId": "EUW1_100"},
            "Bo#NA1": {"internalId": None, "lastMatchId": None},
        },
        "destination": "112233445566778899",
    }
}


def json_store(tmp_path: Path) -> tuple[TrackingStore, Path]:
    path = tmp_path / "tracking.json"
    return TrackingStore(JsonFileBackend(path)), path


# ── load ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_load_missing_file_is_empty(tmp_path: Path) -> None:
    store, _ = json_store(tmp_path)
    assert await store.load() == {}
    assert store.tenants() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content", [b"", b"   \n", b"{not json", b"[1, 2]", b'{"g": \xff\xfe}']
)
async def test_load_unusable_file_is_empty(tmp_path: Path, content: bytes) -> None:
    store, path = json_store(tmp_path)
    path.write_bytes(content)
    assert await store.load() == {}


@pytest.mark.asyncio
async def test_load_parses_registry(tmp_path: Path) -> None:
    store, path = json_store(tmp_path)
    path.write_text(json.dumps(PERSISTED), encoding="utf-8")
    await store.load()

    record = store.find("guild-1")
    assert record is not None
    assert record.destination == "112233445566778899"
    ava = record.tracked["Ava#EUW"]
    assert ava.display_id == "Ava#EUW"
    assert ava.internal_id == "puuid-ava"
    assert ava.last_match_id == "EUW1_100"
    assert record.tracked["Bo#NA1"].internal_id is None
    assert store.entity_count() == 2


@pytest.mark.asyncio
async def test_load_skips_malformed_tenant(tmp_path: Path) -> None:
    store, path = json_store(tmp_path)
    data = dict(PERSISTED, broken={"trackedEntities": "nope"})
    path.write_text(json.dumps(data), encoding="utf-8")
    await store.load()
    assert store.tenants() == ["guild-1"]


# ── save ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_save_round_trips_format(tmp_path: Path) -> None:
    store, path = json_store(tmp_path)
    path.write_text(json.dumps(PERSISTED), encoding="utf-8")
    await store.load()
    await store.save()
    assert json.loads(path.read_text(encoding="utf-8")) == PERSISTED


@pytest.mark.asyncio
async def test_active_game_id_only_written_when_set(tmp_path: Path) -> None:
    store, path = json_store(tmp_path)
    store.upsert_entity("g", "Ava#EUW", TrackedEntity(internal_id="p", active_game_id="EUW1_9"))
    store.upsert_entity("g", "Bo#NA1", TrackedEntity(internal_id="q"))
    await store.save()
    tracked = json.loads(path.read_text(encoding="utf-8"))["g"]["trackedEntities"]
    assert tracked["Ava#EUW"] == {"internalId": "p", "lastMatchId": None, "activeGameId": "EUW1_9"}
    assert tracked["Bo#NA1"] == {"internalId": "q", "lastMatchId": None}


@pytest.mark.asyncio
async def test_failed_save_keeps_previous_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store, path = json_store(tmp_path)
    path.write_text(json.dumps(PERSISTED), encoding="utf-8")
    await store.load()
    store.set_destination("guild-1", "999999999999999999")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("store.backends.os.replace", boom)
    with pytest.raises(StoreWriteError):
        await store.save()

    assert json.loads(path.read_text(encoding="utf-8")) == PERSISTED
    assert [p.name for p in tmp_path.iterdir()] == ["tracking.json"]


class SlowFirstWrite:
    """Backend whose first write blocks until released; records every write."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.writes: list[dict] = []

    async def read(self) -> dict:
        return {}

    async def write(self, data: dict) -> None:
        if not self.writes and not self.started.is_set():
            self.started.set()
            await self.release.wait()
        self.writes.append(data)


@pytest.mark.asyncio
async def test_overlapping_saves_land_newest_last() -> None:
    backend = SlowFirstWrite()
    store = TrackingStore(backend)
    store.get("g1")

    first = asyncio.create_task(store.save())
    await backend.started.wait()

    store.get("g2")
    second = asyncio.create_task(store.save())
    await asyncio.sleep(0)
    backend.release.set()
    await asyncio.gather(first, second)

    assert sorted(backend.writes[-1]) == ["g1", "g2"]


# ── mutations ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_mutations(tmp_path: Path) -> None:
    store, _ = json_store(tmp_path)
    store.upsert_entity("g", "Ava#EUW", TrackedEntity(internal_id="p"))
    assert store.get("g").tracked["Ava#EUW"].display_id == "Ava#EUW"
    assert store.remove_entity("g", "Ava#EUW") is True
    assert store.remove_entity("g", "Ava#EUW") is False
    assert store.remove_entity("unknown", "Ava#EUW") is False


@pytest.mark.asyncio
async def test_get_creates_empty_tenant(tmp_path: Path) -> None:
    store, _ = json_store(tmp_path)
    assert store.find("new") is None
    record = store.get("new")
    assert record.destination is None
    assert record.tracked == {}
    assert store.find("new") is record


# ── Redis backend ───────────────────────────────────────────────────────

def redis_manager(blobs: dict[str, str] | None = None) -> MagicMock:
    manager = MagicMock()
    manager.read_tenant_blobs = AsyncMock(return_value=blobs or {})
    manager.replace_tenant_blobs = AsyncMock()
    return manager


@pytest.mark.asyncio
async def test_redis_backend_load_and_save() -> None:
    manager = redis_manager({"guild-1": json.dumps(PERSISTED["guild-1"]), "bad": "{oops"})
    store = TrackingStore(RedisBackend(manager))
    await store.load()
    assert store.tenants() == ["guild-1"]

    await store.save()
    blobs = manager.replace_tenant_blobs.await_args.args[0]
    assert json.loads(blobs["guild-1"]) == PERSISTED["guild-1"]


@pytest.mark.asyncio
async def test_redis_backend_read_failure_is_empty() -> None:
    manager = redis_manager()
    manager.read_tenant_blobs.side_effect = RedisConnectionError("down")
    store = TrackingStore(RedisBackend(manager))
    assert await store.load() == {}


@pytest.mark.asyncio
async def test_redis_backend_write_failure() -> None:
    manager = redis_manager()
    manager.replace_tenant_blobs.side_effect = RedisConnectionError("down")
    store = TrackingStore(RedisBackend(manager))
    store.get("g")
    with pytest.raises(StoreWriteError):
        await store.save()
