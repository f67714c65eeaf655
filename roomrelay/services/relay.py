"""Per-channel dispatch between signaling frames and the room registry."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable

from ..schemas.signaling import HandshakeRequest, JoinRequest, LeaveRequest, Welcome, parse_client_message
from .registry import ParticipantSession, RoomRegistry

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


class SignalingRelay:
    """Bind participant sessions to a registry and interpret their frames."""

    def __init__(self, registry: RoomRegistry, *, outbox_size: int = 256) -> None:
        self.registry = registry
        self._outbox_size = outbox_size

    def open_session(self) -> ParticipantSession:
        """Create a session for a freshly connected channel and queue its welcome."""

        session = ParticipantSession(outbox=asyncio.Queue(maxsize=self._outbox_size))
        session.deliver(Welcome(id=session.session_id).to_wire())
        logger.debug("Opened session %s", session.session_id)
        return session

    async def handle_frame(self, session: ParticipantSession, raw: str | bytes) -> None:
        """Apply one inbound frame; malformed frames are dropped without reply."""

        try:
            payload = json.loads(raw)
        except (ValueError, RecursionError):
            logger.debug("Dropping non-JSON frame from %s", session.session_id)
            return

        message = parse_client_message(payload)
        if message is None:
            logger.debug("Dropping malformed frame from %s", session.session_id)
            return

        if isinstance(message, JoinRequest):
            await self.registry.join(session, message.room_id)
        elif isinstance(message, LeaveRequest):
            await self.registry.leave(session)
        elif isinstance(message, HandshakeRequest):
            await self.registry.relay(session, message)

    async def close_session(self, session: ParticipantSession) -> None:
        """Treat a channel disconnect as an implicit leave."""

        await self.registry.leave(session)
        session.closed = True
        logger.debug("Closed session %s", session.session_id)


async def pump(session: ParticipantSession, send: SendCallable) -> None:
    """Drain a session's outbox into its channel until cancelled.

    A failed send is logged and the frame dropped; it never reaches whoever
    triggered the frame. Returns once an evicted session's backlog is flushed.
    """

    while True:
        message = await session.outbox.get()
        try:
            await send(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Send to %s failed: %s", session.session_id, exc)
        finally:
            session.outbox.task_done()
        if session.closed and session.outbox.empty():
            return
