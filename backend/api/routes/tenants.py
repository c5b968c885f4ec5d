"""
Tenant command endpoints for the chat front-end.

GET    /v1/tenants/{tenant}/tracked               Tracked Riot IDs, sorted.
POST   /v1/tenants/{tenant}/tracked               Start tracking a Riot ID.
DELETE /v1/tenants/{tenant}/tracked/{display_id}  Stop tracking a Riot ID.
PUT    /v1/tenants/{tenant}/destination           Set the notification channel.

Every response carries the result variant; rendering it for users is the
front-end's job.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from shared.models.enums import DestinationResult, TrackResult, UntrackResult

from api.commands import TrackingCommands
from api.dependencies import get_commands

router = APIRouter(prefix="/v1/tenants", tags=["tenants"])


class TrackRequest(BaseModel):
    display_id: str = Field(min_length=1, description="Riot ID, e.g. Ava#EUW")


class DestinationRequest(BaseModel):
    destination: str = Field(min_length=1, description="Discord channel id")


class CommandResponse(BaseModel):
    tenant: str
    result: str
    display_id: str | None = None
    destination: str | None = None


class TrackedListResponse(BaseModel):
    tenant: str
    tracked: list[str]


@router.get("/{tenant}/tracked")
async def list_tracked(
    tenant: str,
    commands: TrackingCommands = Depends(get_commands),
) -> TrackedListResponse:
    return TrackedListResponse(tenant=tenant, tracked=await commands.list_tracked(tenant))


@router.post("/{tenant}/tracked")
async def track(
    tenant: str,
    body: TrackRequest,
    commands: TrackingCommands = Depends(get_commands),
) -> CommandResponse:
    result: TrackResult = await commands.track(tenant, body.display_id)
    return CommandResponse(tenant=tenant, result=result.value, display_id=body.display_id)


@router.delete("/{tenant}/tracked/{display_id}")
async def untrack(
    tenant: str,
    display_id: str,
    commands: TrackingCommands = Depends(get_commands),
) -> CommandResponse:
    result: UntrackResult = await commands.untrack(tenant, display_id)
    return CommandResponse(tenant=tenant, result=result.value, display_id=display_id)


@router.put("/{tenant}/destination")
async def set_destination(
    tenant: str,
    body: DestinationRequest,
    commands: TrackingCommands = Depends(get_commands),
) -> CommandResponse:
    result: DestinationResult = await commands.set_destination(tenant, body.destination)
    return CommandResponse(tenant=tenant, result=result.value, destination=body.destination)
