"""Data contracts for RTC endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class IceServer(BaseModel):
    urls: list[str] = Field(..., description="STUN/TURN urls")


class RtcConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ice_servers: list[IceServer] = Field(..., alias="iceServers", description="Discovery server hints")
    max_participants: int = Field(..., alias="maxParticipants", ge=1, description="Room capacity enforced by the relay")
