"""RTC client configuration endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Request

from ..schemas.rtc import IceServer, RtcConfigResponse

router = APIRouter()


@router.get("/config", response_model=RtcConfigResponse, response_model_by_alias=True)
async def rtc_config(request: Request) -> RtcConfigResponse:
    """Return STUN hints and the capacity the relay enforces."""

    settings = request.app.state.settings
    return RtcConfigResponse(
        ice_servers=[IceServer(urls=[url]) for url in settings.ice_servers],
        max_participants=request.app.state.registry.capacity,
    )
