"""Client-side mesh coordination: one PeerLink per remote participant."""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..schemas.signaling import HandshakeRelay, PeerJoined, PeerLeft, RoomFull, RoomInfo, Welcome, parse_server_message
from .connection import ConnectionFactory
from .peer_link import LinkState, PeerLink

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]
TrackCallback = Callable[[str, Any], None]


class MeshStatus(str, enum.Enum):
    IDLE = "idle"
    JOINING = "joining"
    JOINED = "joined"
    ROOM_FULL = "room-full"
    LEFT = "left"
    DISCONNECTED = "disconnected"


class PeerMeshCoordinator:
    """Drive the negotiation mesh from relay membership events.

    Negotiation role follows arrival order: members already present offer to
    a newcomer (``peer-joined``), while the newcomer only answers the peers
    listed in its ``room-info`` roster. Every pair therefore has exactly one
    offerer without comparing ids.

    The roster is the key set of the link table, so a listed peer always has a
    link and a link always belongs to a listed peer.
    """

    def __init__(
        self,
        send: SendCallable,
        connection_factory: ConnectionFactory,
        *,
        on_track: Optional[TrackCallback] = None,
    ) -> None:
        self.self_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self.capacity: Optional[int] = None
        self.status = MeshStatus.IDLE
        self.status_text = "Not connected"
        self.remote_tracks: Dict[str, list[Any]] = {}
        self._send = send
        self._connection_factory = connection_factory
        self._on_track = on_track
        self._links: Dict[str, PeerLink] = {}

    @property
    def peers(self) -> list[str]:
        return list(self._links)

    @property
    def participant_count(self) -> int:
        return 1 + len(self._links)

    def link(self, peer_id: str) -> Optional[PeerLink]:
        return self._links.get(peer_id)

    def begin_join(self, room_id: str) -> None:
        self.status = MeshStatus.JOINING
        self.status_text = f'Joining room "{room_id}"...'

    async def handle_message(self, payload: object) -> None:
        """Apply one frame received from the relay; malformed frames are ignored."""

        message = parse_server_message(payload)
        if message is None:
            logger.debug("Ignoring unrecognised relay frame")
            return

        if isinstance(message, Welcome):
            self.self_id = message.id
        elif isinstance(message, RoomInfo):
            await self._on_room_info(message)
        elif isinstance(message, RoomFull):
            await self._on_room_full(message)
        elif isinstance(message, PeerJoined):
            await self._on_peer_joined(message.id)
        elif isinstance(message, PeerLeft):
            await self._on_peer_left(message.id)
        elif isinstance(message, HandshakeRelay):
            self._on_handshake(message)

    async def reset(self, status: MeshStatus = MeshStatus.LEFT, text: str = "Left room.") -> None:
        """Tear down every link, e.g. on local leave, end of call or disconnect."""

        links = list(self._links.values())
        self._links.clear()
        self.remote_tracks.clear()
        self.room_id = None
        if links:
            await asyncio.gather(*(link.close() for link in links))
        self.status = status
        self.status_text = text

    async def settle(self) -> None:
        """Wait until every link has applied its queued work."""

        await asyncio.gather(*(link.settle() for link in list(self._links.values())))

    async def _on_room_info(self, message: RoomInfo) -> None:
        stale = list(self._links.values())
        self._links.clear()
        self.remote_tracks.clear()
        for link in stale:
            await link.close()

        self.room_id = message.room_id
        self.capacity = message.max_participants
        for peer_id in message.peers:
            if peer_id != self.self_id:
                self._links[peer_id] = self._create_link(peer_id)
        self.status = MeshStatus.JOINED
        self.status_text = f'Joined room "{message.room_id}". Waiting for others to join...'
        logger.info("Joined %r with %d peer(s)", message.room_id, len(self._links))

    async def _on_room_full(self, message: RoomFull) -> None:
        self.capacity = message.max_participants
        await self.reset(
            MeshStatus.ROOM_FULL,
            f"Room is full (max {message.max_participants}). Try a different room.",
        )
        logger.info("Room full (%d/%d)", message.size, message.max_participants)

    async def _on_peer_joined(self, peer_id: str) -> None:
        if peer_id == self.self_id:
            return
        previous = self._links.pop(peer_id, None)
        self.remote_tracks.pop(peer_id, None)
        link = self._create_link(peer_id)
        self._links[peer_id] = link
        if previous is not None:
            await previous.close()
        link.request_offer()
        capacity = self.capacity if self.capacity is not None else "?"
        self.status_text = f"Participant joined ({self.participant_count}/{capacity})."

    async def _on_peer_left(self, peer_id: str) -> None:
        link = self._links.pop(peer_id, None)
        self.remote_tracks.pop(peer_id, None)
        if link is None:
            return
        await link.close()
        self.status_text = "Participant left."

    def _on_handshake(self, message: HandshakeRelay) -> None:
        link = self._links.get(message.from_)
        if link is None:
            logger.debug("Dropping %s from unknown peer %s", message.type, message.from_)
            return
        if message.type == "offer":
            link.receive_offer(message.sdp)
        elif message.type == "answer":
            link.receive_answer(message.sdp)
        else:
            link.receive_candidate(message.candidate)

    def _create_link(self, peer_id: str) -> PeerLink:
        return PeerLink(
            peer_id,
            self._send,
            self._connection_factory,
            on_state=self._on_link_state,
            on_track=self._on_link_track,
        )

    def _on_link_state(self, peer_id: str, state: LinkState) -> None:
        if state is LinkState.ESTABLISHED:
            self.status_text = f"Connected to {peer_id}"

    def _on_link_track(self, peer_id: str, track: Any) -> None:
        if peer_id not in self._links:
            return
        self.remote_tracks.setdefault(peer_id, []).append(track)
        if self._on_track is not None:
            self._on_track(peer_id, track)
