"""End-to-end tests for the signaling websocket endpoint."""
from __future__ import annotations

from fastapi.testclient import TestClient

from roomrelay.core.config import Settings
from roomrelay.main import create_app


def make_client(capacity: int = 2) -> TestClient:
    return TestClient(create_app(Settings(max_participants=capacity)))


def welcome_id(ws) -> str:
    welcome = ws.receive_json()
    assert welcome["type"] == "welcome"
    return welcome["id"]


def test_demo_room_scenario():
    with make_client(capacity=2) as client:
        with client.websocket_connect("/") as ws_a:
            a_id = welcome_id(ws_a)
            ws_a.send_json({"type": "join", "roomId": "demo"})
            assert ws_a.receive_json() == {"type": "room-info", "roomId": "demo", "peers": [], "maxParticipants": 2}

            with client.websocket_connect("/ws") as ws_b:
                b_id = welcome_id(ws_b)
                ws_b.send_json({"type": "join", "roomId": "demo"})
                assert ws_b.receive_json()["peers"] == [a_id]
                assert ws_a.receive_json() == {"type": "peer-joined", "id": b_id}

                with client.websocket_connect("/ws") as ws_c:
                    welcome_id(ws_c)
                    ws_c.send_json({"type": "join", "roomId": "demo"})
                    assert ws_c.receive_json() == {"type": "room-full", "maxParticipants": 2, "size": 2}

                    # The channel stays usable after a rejection.
                    ws_c.send_json({"type": "join", "roomId": "elsewhere"})
                    assert ws_c.receive_json()["peers"] == []

                ws_a.send_json({"type": "offer", "to": b_id, "from": "spoofed", "sdp": {"type": "offer", "sdp": "v=0"}})
                assert ws_b.receive_json() == {"type": "offer", "from": a_id, "sdp": {"type": "offer", "sdp": "v=0"}}

            assert ws_a.receive_json() == {"type": "peer-left", "id": b_id}
            assert client.app.state.registry.members("demo") == [a_id]


def test_malformed_frames_get_no_reply():
    with make_client() as client:
        with client.websocket_connect("/ws") as ws:
            my_id = welcome_id(ws)
            ws.send_text("{not json")
            ws.send_json({"roomId": "demo"})
            ws.send_json({"type": "candidate", "to": "nobody", "candidate": {"candidate": ""}})
            ws.send_json({"type": "join", "roomId": "demo"})

            reply = ws.receive_json()
            assert reply["type"] == "room-info"
            assert client.app.state.registry.members("demo") == [my_id]


def test_disconnect_empties_room():
    with make_client() as client:
        with client.websocket_connect("/ws") as ws:
            welcome_id(ws)
            ws.send_json({"type": "join", "roomId": "solo"})
            ws.receive_json()
            assert client.app.state.registry.room_count() == 1

        with client.websocket_connect("/ws") as probe:
            welcome_id(probe)
            probe.send_json({"type": "join", "roomId": "solo"})
            assert probe.receive_json()["peers"] == []


def test_rtc_config_reports_enforced_capacity():
    with make_client(capacity=3) as client:
        response = client.get("/api/rtc/config")

    assert response.status_code == 200
    body = response.json()
    assert body["maxParticipants"] == 3
    assert body["iceServers"][0]["urls"] == ["stun:stun.l.google.com:19302"]
