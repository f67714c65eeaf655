"""Tests for the websocket-owning mesh client."""
from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from roomrelay.client import session as session_module
from roomrelay.client.coordinator import MeshStatus
from roomrelay.client.session import MeshClient

_CLOSE = object()


class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self._messages: asyncio.Queue[object] = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        await self._messages.put(_CLOSE)

    def __aiter__(self) -> "DummyWebSocket":
        return self

    async def __anext__(self) -> str:
        message = await self._messages.get()
        if message is _CLOSE:
            raise StopAsyncIteration
        return message

    async def queue_message(self, payload: dict) -> None:
        await self._messages.put(json.dumps(payload))


class IdleConnection:
    def __init__(self, listener) -> None:
        self.closed = False

    @property
    def connection_state(self) -> str:
        return "new"

    async def create_offer(self) -> dict:
        return {"type": "offer", "sdp": "o"}

    async def create_answer(self) -> dict:
        return {"type": "answer", "sdp": "a"}

    async def set_remote_description(self, description: dict) -> None:
        return None

    async def add_ice_candidate(self, candidate: dict) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


async def wait_for(predicate) -> None:
    for _ in range(500):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def dummy_ws(monkeypatch):
    ws = DummyWebSocket()

    async def connect(url, **kwargs):
        return ws

    monkeypatch.setattr(session_module, "websockets", SimpleNamespace(connect=connect))
    return ws


@pytest.mark.asyncio
async def test_join_sends_request_and_follows_roster(dummy_ws):
    client = MeshClient("ws://relay.test/ws", connection_factory=IdleConnection)

    await client.join(" demo ")
    assert dummy_ws.sent == [{"type": "join", "roomId": "demo"}]
    assert client.coordinator.status is MeshStatus.JOINING

    await dummy_ws.queue_message({"type": "welcome", "id": "me"})
    await dummy_ws.queue_message({"type": "room-info", "roomId": "demo", "peers": [], "maxParticipants": 6})
    await dummy_ws.queue_message({"type": "peer-joined", "id": "other"})
    await wait_for(lambda: any(m["type"] == "offer" for m in dummy_ws.sent))

    assert dummy_ws.sent[-1] == {"type": "offer", "to": "other", "sdp": {"type": "offer", "sdp": "o"}}

    await client.leave()
    assert dummy_ws.sent[-1] == {"type": "leave"}
    assert dummy_ws.closed
    assert client.coordinator.status is MeshStatus.LEFT
    assert client.coordinator.peers == []


@pytest.mark.asyncio
async def test_room_full_closes_channel(dummy_ws):
    client = MeshClient("ws://relay.test/ws", connection_factory=IdleConnection)

    await client.join("demo")
    await dummy_ws.queue_message({"type": "room-full", "maxParticipants": 2, "size": 2})
    await wait_for(lambda: not client.connected)

    assert dummy_ws.closed
    assert client.coordinator.status is MeshStatus.ROOM_FULL
    assert client.coordinator.capacity == 2


@pytest.mark.asyncio
async def test_remote_close_resets_mesh(dummy_ws):
    client = MeshClient("ws://relay.test/ws", connection_factory=IdleConnection)

    await client.join("demo")
    await dummy_ws.queue_message({"type": "room-info", "roomId": "demo", "peers": ["a"], "maxParticipants": 6})
    await wait_for(lambda: client.coordinator.peers == ["a"])
    link = client.coordinator.link("a")

    await dummy_ws.close()
    await wait_for(lambda: client.coordinator.status is MeshStatus.DISCONNECTED)

    assert link.closed
    assert not client.connected


@pytest.mark.asyncio
async def test_blank_room_is_rejected_before_connecting(dummy_ws):
    client = MeshClient("ws://relay.test/ws", connection_factory=IdleConnection)

    with pytest.raises(ValueError):
        await client.join("   ")

    assert not client.connected
    assert dummy_ws.sent == []
