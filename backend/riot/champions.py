"""
Champion display names from Data Dragon.
Loaded once at start-up; missing entries fall back to the raw identifier.
"""
from __future__ import annotations

from typing import Mapping, Optional

import httpx

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ChampionTable:
    """Raw champion identifier (``MonkeyKing`` or ``62``) → display name (``Wukong``)."""

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = dict(names or {})

    def __len__(self) -> int:
        return len(self._names)

    def display_name(self, raw: str | int) -> str:
        key = str(raw)
        return self._names.get(key, key)

    @classmethod
    def from_ddragon(cls, payload: dict) -> "ChampionTable":
        """Build from a ``champion.json`` document."""
        names: dict[str, str] = {}
        for champ in (payload.get("data") or {}).values():
            name = champ.get("name")
            if not name:
                continue
            if champ.get("id"):
                names[str(champ["id"])] = name
            if champ.get("key"):
                names[str(champ["key"])] = name
        return cls(names)

    @classmethod
    async def load(
        cls,
        settings: Settings | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ChampionTable":
        """Fetch the latest champion list. Returns an empty table on any failure."""
        settings = settings or get_settings()
        try:
            async with httpx.AsyncClient(
                base_url=settings.ddragon_url,
                timeout=settings.request_timeout_s,
                transport=transport,
            ) as client:
                versions = (await client.get("/api/versions.json")).raise_for_status().json()
                version = versions[0]
                resp = await client.get(
                    f"/cdn/{version}/data/{settings.ddragon_locale}/champion.json"
                )
                table = cls.from_ddragon(resp.raise_for_status().json())
        except (httpx.HTTPError, ValueError, LookupError, AttributeError) as exc:
            logger.warning("champion_table_unavailable", error=str(exc))
            return cls()

        logger.info("champion_table_loaded", version=version, entries=len(table))
        return table
