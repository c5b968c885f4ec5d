"""
Notification dispatcher.
Posts match summaries to a tenant's Discord channel through the REST API.
Delivery problems are reported as ``DispatchOutcome.FAILED``, never raised, so the
caller can keep the match pointer where it is and retry on the next cycle.
"""
from __future__ import annotations

import re
from typing import Any, Optional

import httpx

from shared.config import Settings, get_settings
from shared.models.domain import Summary
from shared.models.enums import DispatchOutcome
from shared.utils.logging import get_logger
from shared.utils.metrics import NOTIFICATIONS

logger = get_logger(__name__)

CHANNEL_ID_RE = re.compile(r"^\d{15,21}$")


def is_channel_id(destination: Optional[str]) -> bool:
    return bool(destination) and CHANNEL_ID_RE.match(destination) is not None


def render_message(summary: Summary) -> dict[str, Any]:
    """Discord message body carrying every summary field."""
    fields = [
        ("Result", summary.result.value),
        ("Champion", summary.champion),
        ("K / D / A", f"{summary.kills} / {summary.deaths} / {summary.assists}"),
        ("KDA", summary.kda),
        ("Kill participation", summary.kill_participation),
        ("Largest multikill", summary.multikill),
        ("Mode", summary.mode),
        ("Duration", summary.duration),
    ]
    embed: dict[str, Any] = {
        "title": f"{summary.display_id} has finished their game!",
        "fields": [{"name": name, "value": value, "inline": True} for name, value in fields],
        "footer": {"text": summary.match_id},
    }
    if summary.ended_at is not None:
        embed["timestamp"] = summary.ended_at.isoformat()
    return {"embeds": [embed]}


class DiscordDispatcher:
    """Delivers summaries to Discord text channels with a bot token."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._settings.discord_api_url,
            headers={"Authorization": f"Bot {self._settings.discord_bot_token}"},
            timeout=httpx.Timeout(self._settings.request_timeout_s, connect=5.0),
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("DiscordDispatcher not started. Call start() first.")
        return self._client

    async def resolve_destination(self, destination: Optional[str]) -> bool:
        """True when ``destination`` names a channel the bot can see."""
        if not is_channel_id(destination):
            return False
        try:
            resp = await self.client.get(f"/channels/{destination}")
        except httpx.HTTPError as exc:
            logger.warning("destination_lookup_failed", destination=destination, error=str(exc))
            return False
        return resp.is_success

    async def send(self, destination: Optional[str], summary: Summary) -> DispatchOutcome:
        outcome = await self._post(destination, render_message(summary), match_id=summary.match_id)
        if outcome is DispatchOutcome.OK:
            logger.info(
                "notification_sent",
                destination=destination,
                display_id=summary.display_id,
                match_id=summary.match_id,
            )
        return outcome

    async def send_notice(self, destination: Optional[str], text: str) -> DispatchOutcome:
        """Plain-text message to the tenant's channel (e.g. a dropped player)."""
        return await self._post(destination, {"content": text}, kind="notice")

    async def _post(self, destination: Optional[str], body: dict[str, Any], **context: str) -> DispatchOutcome:
        if not is_channel_id(destination):
            logger.warning("dispatch_invalid_destination", destination=destination, **context)
            NOTIFICATIONS.labels(outcome=DispatchOutcome.FAILED.value).inc()
            return DispatchOutcome.FAILED

        try:
            resp = await self.client.post(f"/channels/{destination}/messages", json=body)
        except httpx.HTTPError as exc:
            logger.warning(
                "dispatch_transport_error",
                destination=destination,
                error=str(exc),
                **context,
            )
            NOTIFICATIONS.labels(outcome=DispatchOutcome.FAILED.value).inc()
            return DispatchOutcome.FAILED

        if not resp.is_success:
            logger.warning(
                "dispatch_rejected",
                destination=destination,
                status=resp.status_code,
                **context,
            )
            NOTIFICATIONS.labels(outcome=DispatchOutcome.FAILED.value).inc()
            return DispatchOutcome.FAILED

        NOTIFICATIONS.labels(outcome=DispatchOutcome.OK.value).inc()
        return DispatchOutcome.OK
