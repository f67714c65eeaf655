"""Websocket channel owner for a mesh participant."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Callable, Optional

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..core.config import settings
from ..schemas.signaling import JoinRequest, LeaveRequest
from .connection import AiortcConnectionFactory, ConnectionFactory
from .coordinator import MeshStatus, PeerMeshCoordinator

logger = logging.getLogger(__name__)


class MeshClient:
    """Connect to the relay, join a room and keep the mesh coordinator fed.

    There is no automatic reconnection; after a disconnect the caller may
    simply ``join`` again.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        connection_factory: Optional[ConnectionFactory] = None,
        on_track: Optional[Callable[[str, Any], None]] = None,
    ) -> None:
        self.url = url or settings.signaling_url
        factory = connection_factory or AiortcConnectionFactory(ice_servers=settings.ice_servers)
        self.coordinator = PeerMeshCoordinator(self.send, factory, on_track=on_track)
        self._ws: Optional[ClientConnection] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._leaving = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def __aenter__(self) -> "MeshClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.leave()

    async def join(self, room_id: str) -> None:
        """Open the channel if needed and ask the relay for a seat in ``room_id``."""

        request = JoinRequest(room_id=room_id)
        if self._ws is None:
            self._ws = await websockets.connect(self.url)
            self._leaving = False
            self._receive_task = asyncio.create_task(self._receive_loop(self._ws))
        self.coordinator.begin_join(request.room_id)
        await self.send(request.to_wire())

    async def leave(self) -> None:
        """Leave the room, release every peer connection and close the channel."""

        self._leaving = True
        await self.send(LeaveRequest().to_wire())
        await self.coordinator.reset(MeshStatus.LEFT, "Left room. You can join again.")
        await self._close_channel()

    async def send(self, message: dict) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(json.dumps(message))
        except ConnectionClosed:
            logger.debug("Channel closed; dropping %s frame", message.get("type"))

    async def _receive_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                await self.coordinator.handle_message(payload)
                if self.coordinator.status is MeshStatus.ROOM_FULL:
                    await ws.close()
                    break
        except ConnectionClosed as exc:
            logger.info("Signaling channel closed: %s", exc)
        finally:
            if self._ws is ws:
                self._ws = None
            if not self._leaving and self.coordinator.status is not MeshStatus.ROOM_FULL:
                await self.coordinator.reset(MeshStatus.DISCONNECTED, "Disconnected from signaling server")

    async def _close_channel(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
