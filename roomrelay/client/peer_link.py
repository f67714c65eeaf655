"""Offer/answer/candidate sequencing with one remote participant."""
from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

from .connection import ConnectionFactory

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]
StateCallback = Callable[[str, "LinkState"], None]
TrackCallback = Callable[[str, Any], None]


class LinkState(str, enum.Enum):
    IDLE = "idle"
    OFFER_SENT = "offer-sent"
    ANSWER_SENT = "answer-sent"
    NEGOTIATING = "negotiating"
    ESTABLISHED = "established"
    CLOSED = "closed"


class LinkRole(str, enum.Enum):
    UNSET = "unset"
    OFFERER = "offerer"
    ANSWERER = "answerer"


class PeerLink:
    """Negotiation state machine wrapping one peer-connection resource.

    Inbound work is queued and applied by a per-link task, so each link is
    strictly ordered while different links run concurrently. Remote candidates
    that arrive before the remote description are held back and applied, in
    arrival order, right after it.
    """

    def __init__(
        self,
        peer_id: str,
        send: SendCallable,
        connection_factory: ConnectionFactory,
        *,
        on_state: Optional[StateCallback] = None,
        on_track: Optional[TrackCallback] = None,
    ) -> None:
        self.peer_id = peer_id
        self.role = LinkRole.UNSET
        self.state = LinkState.IDLE
        self.connection_state = "new"
        self.error: Optional[BaseException] = None
        self._send = send
        self._on_state = on_state
        self._on_track = on_track
        self._remote_description_set = False
        self._pending_candidates: deque[dict] = deque()
        self._inbox: asyncio.Queue[tuple[Callable[..., Awaitable[None]], tuple]] = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None
        self._connection = connection_factory(self)

    @property
    def closed(self) -> bool:
        return self.state is LinkState.CLOSED

    @property
    def pending_candidates(self) -> list[dict]:
        return list(self._pending_candidates)

    # queued entry points

    def request_offer(self) -> None:
        self._submit(self.create_offer)

    def receive_offer(self, sdp: Any) -> None:
        self._submit(self.accept_offer, sdp)

    def receive_answer(self, sdp: Any) -> None:
        self._submit(self.accept_answer, sdp)

    def receive_candidate(self, candidate: Any) -> None:
        self._submit(self.add_remote_candidate, candidate)

    async def settle(self) -> None:
        """Wait until every queued operation has been applied."""

        await self._inbox.join()

    # transitions

    async def create_offer(self) -> None:
        if self.state is not LinkState.IDLE:
            logger.warning("Not offering to %s from state %s", self.peer_id, self.state.value)
            return
        self.role = LinkRole.OFFERER
        offer = await self._connection.create_offer()
        if self.closed:
            return
        self._set_state(LinkState.OFFER_SENT)
        await self._send({"type": "offer", "to": self.peer_id, "sdp": offer})

    async def accept_offer(self, sdp: Any) -> None:
        if self.state is not LinkState.IDLE:
            logger.warning("Dropping offer from %s in state %s", self.peer_id, self.state.value)
            return
        self.role = LinkRole.ANSWERER
        await self._apply_remote_description(sdp)
        answer = await self._connection.create_answer()
        if self.closed:
            return
        self._set_state(LinkState.ANSWER_SENT)
        await self._send({"type": "answer", "to": self.peer_id, "sdp": answer})
        if self.state is LinkState.ANSWER_SENT:
            self._set_state(LinkState.NEGOTIATING)
            if self.connection_state == "connected":
                self._set_state(LinkState.ESTABLISHED)

    async def accept_answer(self, sdp: Any) -> None:
        if self.state is not LinkState.OFFER_SENT:
            logger.warning("Dropping answer from %s in state %s", self.peer_id, self.state.value)
            return
        await self._apply_remote_description(sdp)
        if self.closed:
            return
        self._set_state(LinkState.NEGOTIATING)
        if self.connection_state == "connected":
            self._set_state(LinkState.ESTABLISHED)

    async def add_remote_candidate(self, candidate: Any) -> None:
        if self.closed or not candidate:
            return
        if not self._remote_description_set:
            self._pending_candidates.append(candidate)
            return
        await self._connection.add_ice_candidate(candidate)

    async def close(self) -> None:
        """Release the connection resource; later messages are ignored."""

        if self.closed:
            return
        self._set_state(LinkState.CLOSED)
        if self._worker is not None and self._worker is not asyncio.current_task():
            self._worker.cancel()
            with suppress(asyncio.CancelledError):
                await self._worker
        self._drain_inbox()
        self._pending_candidates.clear()
        try:
            await self._connection.close()
        except Exception as exc:
            logger.warning("Closing connection to %s failed: %s", self.peer_id, exc)

    # ConnectionListener

    def handle_local_candidate(self, candidate: dict) -> None:
        if candidate:
            self._submit(self._send, {"type": "candidate", "to": self.peer_id, "candidate": candidate})

    def handle_connection_state(self, state: str) -> None:
        if self.closed:
            return
        self.connection_state = state
        if state == "connected" and self.state is LinkState.NEGOTIATING:
            self._set_state(LinkState.ESTABLISHED)
        elif state == "failed":
            logger.warning("Connection to %s failed", self.peer_id)

    def handle_remote_track(self, track: Any) -> None:
        if not self.closed and self._on_track is not None:
            self._on_track(self.peer_id, track)

    # internals

    async def _apply_remote_description(self, sdp: Any) -> None:
        await self._connection.set_remote_description(sdp)
        self._remote_description_set = True
        while self._pending_candidates and not self.closed:
            candidate = self._pending_candidates.popleft()
            try:
                await self._connection.add_ice_candidate(candidate)
            except Exception as exc:
                logger.warning("Buffered candidate for %s rejected: %s", self.peer_id, exc)

    def _set_state(self, state: LinkState) -> None:
        self.state = state
        logger.debug("Link %s -> %s", self.peer_id, state.value)
        if self._on_state is not None:
            self._on_state(self.peer_id, state)

    def _submit(self, operation: Callable[..., Awaitable[None]], *args: Any) -> None:
        if self.closed:
            return
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
        self._inbox.put_nowait((operation, args))

    async def _run(self) -> None:
        while True:
            operation, args = await self._inbox.get()
            try:
                await operation(*args)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.error = exc
                name = getattr(operation, "__name__", repr(operation))
                logger.warning("Negotiation with %s failed in %s: %s", self.peer_id, name, exc)
            finally:
                self._inbox.task_done()

    def _drain_inbox(self) -> None:
        while True:
            try:
                self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._inbox.task_done()
