"""Signaling websocket endpoint."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services.relay import SignalingRelay, pump

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/")
@router.websocket("/ws")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Relay room membership and handshake frames for one participant."""

    relay: SignalingRelay = websocket.app.state.relay
    await websocket.accept()

    session = relay.open_session()

    async def write() -> None:
        await pump(session, websocket.send_json)
        # Evicted for overflowing its outbox; the peer must rejoin.
        try:
            await websocket.close(code=1013)
        except Exception as exc:
            logger.debug("Close for %s skipped: %s", session.session_id, exc)

    writer = asyncio.create_task(write())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text") or message.get("bytes")
            if raw:
                await relay.handle_frame(session, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await relay.close_session(session)
        writer.cancel()
        with suppress(asyncio.CancelledError):
            await writer
        logger.debug("Channel for %s finished", session.session_id)
