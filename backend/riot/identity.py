"""Riot ID → PUUID resolution via account-v1."""
from __future__ import annotations

from urllib.parse import quote

from shared.exceptions import UpstreamError, UpstreamNotFoundError
from shared.models.domain import RIOT_ID_SEPARATOR, is_riot_id
from shared.utils.http_client import RiotHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

ACCOUNT_BY_RIOT_ID_PATH = "/riot/account/v1/accounts/by-riot-id/{name}/{tag}"


class IdentityResolver:
    """
    Maps a user-supplied Riot ID (``name#tag``) to the player's PUUID.

    Successful lookups are cached for the life of the process; a NotFound
    evicts any cached value and propagates so the caller can drop the entity.
    """

    def __init__(self, http: RiotHTTPClient) -> None:
        self._http = http
        self._cache: dict[str, str] = {}

    async def resolve(self, display_id: str) -> str:
        """
        Raises:
            ValueError: ``display_id`` has no tagline.
            UpstreamNotFoundError: No such account. Not retried.
            UpstreamTransientError: Retry budget exhausted.
        """
        if not is_riot_id(display_id):
            raise ValueError(f"Riot ID needs a name and a tagline: {display_id!r}")

        cached = self._cache.get(display_id)
        if cached is not None:
            return cached

        name, _, tag = display_id.partition(RIOT_ID_SEPARATOR)
        path = ACCOUNT_BY_RIOT_ID_PATH.format(
            name=quote(name.strip(), safe=""), tag=quote(tag.strip(), safe="")
        )
        try:
            data = await self._http.get_json(path, endpoint="account")
        except UpstreamNotFoundError:
            self._cache.pop(display_id, None)
            logger.info("riot_id_not_found", display_id=display_id)
            raise

        puuid = data.get("puuid") if isinstance(data, dict) else None
        if not puuid:
            raise UpstreamError(f"Account payload without puuid for {display_id}", path=path)

        self._cache[display_id] = puuid
        return puuid

    def forget(self, display_id: str) -> None:
        self._cache.pop(display_id, None)
