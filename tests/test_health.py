import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from roomrelay.core.config import Settings
from roomrelay.main import app, create_app


@pytest.mark.asyncio
async def test_health_endpoint() -> None:
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/api/health")
        head = await client.head("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert head.status_code == 200


@pytest.mark.asyncio
async def test_index_is_plain_text() -> None:
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert response.text == "WebRTC signaling server is running.\n"


@pytest.fixture
def client_build(tmp_path):
    (tmp_path / "index.html").write_text("<!doctype html><div id=root></div>")
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "app.js").write_text("console.log('mesh')")
    return tmp_path


@pytest.mark.asyncio
async def test_client_build_serves_assets_and_falls_back_to_index(client_build) -> None:
    build_app = create_app(Settings(static_dir=str(client_build)))
    transport = ASGITransport(app=build_app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        index = await client.get("/")
        asset = await client.get("/assets/app.js")
        deep_link = await client.get("/rooms/demo")
        health = await client.get("/api/health")
        post = await client.post("/rooms/demo")

    assert index.status_code == 200
    assert "id=root" in index.text
    assert asset.status_code == 200
    assert asset.text == "console.log('mesh')"
    assert deep_link.status_code == 200
    assert deep_link.text == index.text
    assert health.json() == {"status": "ok"}
    assert post.status_code == 405


def test_signaling_socket_still_answers_on_root_with_client_build(client_build) -> None:
    with TestClient(create_app(Settings(static_dir=str(client_build)))) as client:
        with client.websocket_connect("/") as ws:
            assert ws.receive_json()["type"] == "welcome"
