"""Peer-connection resources driven by a PeerLink.

A link talks to its connection through the small ``PeerConnection`` protocol
below. ``AiortcConnection`` backs it with an aiortc ``RTCPeerConnection``;
tests substitute in-memory fakes.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Protocol

from aiortc import RTCConfiguration, RTCIceCandidate, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaRelay
from aiortc.sdp import candidate_from_sdp

logger = logging.getLogger(__name__)


class ConnectionListener(Protocol):
    """Callbacks a connection resource reports to its owner."""

    def handle_local_candidate(self, candidate: dict) -> None: ...

    def handle_connection_state(self, state: str) -> None: ...

    def handle_remote_track(self, track: Any) -> None: ...


class PeerConnection(Protocol):
    """The operations a PeerLink needs from a connection resource.

    Descriptions and candidates are plain dicts shaped like the browser's
    ``RTCSessionDescriptionInit`` and ``RTCIceCandidateInit``.
    """

    @property
    def connection_state(self) -> str: ...

    async def create_offer(self) -> dict: ...

    async def create_answer(self) -> dict: ...

    async def set_remote_description(self, description: dict) -> None: ...

    async def add_ice_candidate(self, candidate: dict) -> None: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[[ConnectionListener], PeerConnection]


def describe(description: RTCSessionDescription) -> dict:
    return {"type": description.type, "sdp": description.sdp}


def parse_candidate(payload: dict) -> Optional[RTCIceCandidate]:
    """Convert a browser candidate dict; ``None`` marks end-of-candidates."""

    text = (payload.get("candidate") or "").strip()
    if text.startswith("candidate:"):
        text = text[len("candidate:"):]
    if not text:
        return None
    candidate = candidate_from_sdp(text)
    candidate.sdpMid = payload.get("sdpMid")
    candidate.sdpMLineIndex = payload.get("sdpMLineIndex")
    return candidate


class AiortcConnection:
    """``PeerConnection`` backed by aiortc.

    aiortc gathers candidates before ``setLocalDescription`` returns and embeds
    them in the SDP, so it never reports trickled local candidates.
    """

    def __init__(
        self,
        listener: ConnectionListener,
        *,
        ice_servers: Iterable[str] = (),
        tracks: Iterable[Any] = (),
    ) -> None:
        configuration = RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in ice_servers])
        self._pc = RTCPeerConnection(configuration=configuration)
        for track in tracks:
            self._pc.addTrack(track)

        @self._pc.on("connectionstatechange")
        def _on_connection_state() -> None:
            listener.handle_connection_state(self._pc.connectionState)

        @self._pc.on("track")
        def _on_track(track: Any) -> None:
            listener.handle_remote_track(track)

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    async def create_offer(self) -> dict:
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        return describe(self._pc.localDescription)

    async def create_answer(self) -> dict:
        answer = await self._pc.createAnswer()
        await self._pc.setLocalDescription(answer)
        return describe(self._pc.localDescription)

    async def set_remote_description(self, description: dict) -> None:
        await self._pc.setRemoteDescription(RTCSessionDescription(sdp=description["sdp"], type=description["type"]))

    async def add_ice_candidate(self, candidate: dict) -> None:
        parsed = parse_candidate(candidate)
        if parsed is None:
            return
        await self._pc.addIceCandidate(parsed)

    async def close(self) -> None:
        await self._pc.close()


class AiortcConnectionFactory:
    """Build one ``AiortcConnection`` per remote peer, sharing local tracks.

    Local tracks are fanned out through a ``MediaRelay`` so every peer gets
    its own subscription.
    """

    def __init__(self, ice_servers: Iterable[str] = (), tracks: Iterable[Any] = ()) -> None:
        self._ice_servers = list(ice_servers)
        self._tracks = list(tracks)
        self._relay = MediaRelay()

    def __call__(self, listener: ConnectionListener) -> AiortcConnection:
        tracks = [self._relay.subscribe(track) for track in self._tracks]
        return AiortcConnection(listener, ice_servers=self._ice_servers, tracks=tracks)
