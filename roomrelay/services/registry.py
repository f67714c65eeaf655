"""In-memory room registry for the signaling relay."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from uuid import uuid4

from ..schemas.signaling import HandshakeRelay, HandshakeRequest, PeerJoined, PeerLeft, RoomFull, RoomInfo

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class ParticipantSession:
    """Server-side record bound to exactly one signaling channel.

    Outbound frames go through ``outbox``; enqueueing never waits on the
    network, so a slow member cannot stall a broadcast. A member whose outbox
    overflows is marked closed: it has missed a frame and its view of the
    room can no longer be trusted.
    """

    session_id: str = field(default_factory=lambda: str(uuid4()))
    room_id: Optional[str] = None
    outbox: asyncio.Queue[dict] = field(default_factory=lambda: asyncio.Queue(maxsize=256))
    closed: bool = False

    def deliver(self, message: dict) -> bool:
        if self.closed:
            return False
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Outbox full for %s on %s frame; closing session", self.session_id, message.get("type"))
            self.closed = True
            return False
        return True


@dataclass(slots=True)
class JoinResult:
    room_id: str
    accepted: bool
    peers: list[str]
    capacity: int
    size: int


class RoomRegistry:
    """Own the room table, enforce capacity and route handshake frames.

    Every mutation runs under one lock and enqueues its notifications before
    releasing it, so members observe a room's membership events in the order
    they were applied.
    """

    def __init__(self, capacity: int = 6) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._rooms: Dict[str, Dict[str, ParticipantSession]] = {}
        self._lock = asyncio.Lock()

    async def join(self, session: ParticipantSession, room_id: str) -> Optional[JoinResult]:
        """Place the session in ``room_id`` or reject it with ``room-full``.

        Returns ``None`` when the room id is blank; nothing is sent in that case.
        """

        room_id = room_id.strip()
        if not room_id:
            return None

        async with self._lock:
            self._remove(session)

            members = self._rooms.get(room_id, {})
            if len(members) >= self.capacity:
                size = len(members)
                session.deliver(RoomFull(max_participants=self.capacity, size=size).to_wire())
                logger.info("Rejected %s from full room %r (%d/%d)", session.session_id, room_id, size, self.capacity)
                return JoinResult(room_id=room_id, accepted=False, peers=[], capacity=self.capacity, size=size)

            others = list(members.values())
            peers = [other.session_id for other in others]
            if not session.deliver(RoomInfo(room_id=room_id, peers=peers, max_participants=self.capacity).to_wire()):
                return JoinResult(room_id=room_id, accepted=False, peers=[], capacity=self.capacity, size=len(members))

            members[session.session_id] = session
            self._rooms[room_id] = members
            session.room_id = room_id
            self._broadcast(others, PeerJoined(id=session.session_id).to_wire())
            logger.info("%s joined %r (%d/%d)", session.session_id, room_id, len(members), self.capacity)
            return JoinResult(room_id=room_id, accepted=True, peers=peers, capacity=self.capacity, size=len(members))

    async def leave(self, session: ParticipantSession) -> bool:
        """Remove the session from its room; a no-op when it is in none."""

        async with self._lock:
            return self._remove(session)

    async def relay(self, session: ParticipantSession, message: HandshakeRequest) -> bool:
        """Forward a handshake frame to one member of the sender's room.

        The outgoing ``from`` is always the sender's session id.
        """

        to = message.to
        async with self._lock:
            room_id = session.room_id
            if not room_id or not to:
                return False
            target = self._rooms.get(room_id, {}).get(to)
            if target is None:
                logger.debug("Dropping %s from %s: %r is not in %r", message.type, session.session_id, to, room_id)
                return False
            envelope = HandshakeRelay(
                type=message.type,
                from_=session.session_id,
                sdp=message.sdp,
                candidate=message.candidate,
            )
            return self._deliver(target, envelope.to_wire())

    def members(self, room_id: str) -> list[str]:
        return list(self._rooms.get(room_id, {}))

    def room_count(self) -> int:
        return len(self._rooms)

    def snapshot(self) -> dict[str, list[str]]:
        return {room_id: list(members) for room_id, members in self._rooms.items()}

    async def close(self) -> None:
        """Drop every room without notifying anyone."""

        async with self._lock:
            for members in self._rooms.values():
                for member in members.values():
                    member.room_id = None
            self._rooms.clear()

    def _remove(self, session: ParticipantSession) -> bool:
        room_id = session.room_id
        if not room_id:
            return False
        session.room_id = None
        members = self._rooms.get(room_id)
        if not members or members.pop(session.session_id, None) is None:
            return False
        if members:
            self._broadcast(list(members.values()), PeerLeft(id=session.session_id).to_wire())
        else:
            self._rooms.pop(room_id, None)
        logger.info("%s left %r", session.session_id, room_id)
        return True

    def _broadcast(self, recipients: list[ParticipantSession], message: dict) -> None:
        for recipient in recipients:
            self._deliver(recipient, message)

    def _deliver(self, recipient: ParticipantSession, message: dict) -> bool:
        if recipient.deliver(message):
            return True
        # An overflowed member leaves its room so the others see peer-left.
        if recipient.closed and recipient.room_id:
            logger.warning("Evicting %s from %r after outbox overflow", recipient.session_id, recipient.room_id)
            self._remove(recipient)
        return False
