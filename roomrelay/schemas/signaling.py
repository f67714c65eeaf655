"""Data contracts for the signaling wire protocol.

Every frame is a JSON object with a ``type`` discriminator. Field names on the
wire are camelCase; the models expose snake_case attributes and dump by alias.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

HANDSHAKE_TYPES = ("offer", "answer", "candidate")


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# client -> relay


class JoinRequest(_Message):
    type: Literal["join"] = "join"
    room_id: str = Field(..., alias="roomId", description="Room name to join")

    @field_validator("room_id")
    @classmethod
    def _strip_room_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("room id must not be empty")
        return value


class LeaveRequest(_Message):
    type: Literal["leave"] = "leave"


class HandshakeRequest(_Message):
    """Offer, answer or candidate addressed to one room member.

    Any client supplied ``from`` is ignored; the relay stamps the sender.
    """

    type: Literal["offer", "answer", "candidate"]
    to: str = Field(default="", description="Target participant id")
    sdp: Optional[Any] = None
    candidate: Optional[Any] = None


ClientMessage = Annotated[Union[JoinRequest, LeaveRequest, HandshakeRequest], Field(discriminator="type")]


# relay -> client


class Welcome(_Message):
    type: Literal["welcome"] = "welcome"
    id: str


class RoomInfo(_Message):
    type: Literal["room-info"] = "room-info"
    room_id: str = Field(..., alias="roomId")
    peers: list[str] = Field(default_factory=list)
    max_participants: int = Field(..., alias="maxParticipants", ge=1)


class RoomFull(_Message):
    type: Literal["room-full"] = "room-full"
    max_participants: int = Field(..., alias="maxParticipants", ge=1)
    size: int = Field(..., ge=0)


class PeerJoined(_Message):
    type: Literal["peer-joined"] = "peer-joined"
    id: str


class PeerLeft(_Message):
    type: Literal["peer-left"] = "peer-left"
    id: str


class HandshakeRelay(_Message):
    type: Literal["offer", "answer", "candidate"]
    from_: str = Field(..., alias="from")
    sdp: Optional[Any] = None
    candidate: Optional[Any] = None


ServerMessage = Annotated[
    Union[Welcome, RoomInfo, RoomFull, PeerJoined, PeerLeft, HandshakeRelay],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def parse_client_message(payload: object) -> Optional[Union[JoinRequest, LeaveRequest, HandshakeRequest]]:
    """Validate an inbound relay frame, returning ``None`` for anything malformed."""

    try:
        return _client_adapter.validate_python(payload)
    except ValidationError:
        return None


def parse_server_message(payload: object) -> Optional[Union[Welcome, RoomInfo, RoomFull, PeerJoined, PeerLeft, HandshakeRelay]]:
    """Validate a frame received from the relay, returning ``None`` when malformed."""

    try:
        return _server_adapter.validate_python(payload)
    except ValidationError:
        return None
