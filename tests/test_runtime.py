import asyncio
import json

import pytest
import pytest_asyncio
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from keyrelay.core.config import RelayConfig
from keyrelay.server.runtime import ServerRuntime


@pytest_asyncio.fixture
async def runtime(tmp_path):
    index = tmp_path / "chat.html"
    index.write_text("<html><body>chat</body></html>", encoding="utf-8")
    cfg = RelayConfig(host="127.0.0.1", port=0, index_file=index, ping_interval=None)
    rt = ServerRuntime(cfg)
    await rt.start()
    try:
        yield rt
    finally:
        await rt.stop()


async def _recv(ws):
    return json.loads(await asyncio.wait_for(ws.recv(), timeout=2))


async def _http_get(port, path, headers=""):
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"GET {path} HTTP/1.1\r\nHost: localhost\r\n{headers}\r\n".encode())
    await writer.drain()
    data = await asyncio.wait_for(reader.read(), timeout=2)
    writer.close()
    return data.decode("utf-8", "replace")


@pytest.mark.asyncio
async def test_relay_over_websockets(runtime):
    url = f"ws://127.0.0.1:{runtime.port}/ws"
    async with connect(url) as admin, connect(url) as user:
        assert await _recv(admin) == {"type": "STATUS", "role": "admin"}
        assert await _recv(user) == {"type": "STATUS", "role": "user"}
        new_user = await _recv(admin)
        assert new_user["type"] == "NEW_USER" and new_user["userId"] == 2

        await admin.send(json.dumps({"type": "SET_ADMIN_KEY", "key": {"kty": "EC"}}))
        assert (await _recv(admin))["type"] == "STATUS"

        await user.send(json.dumps({"type": "REQUEST_ADMIN_KEY"}))
        assert await _recv(user) == {"type": "ADMIN_KEY_RESPONSE", "key": {"kty": "EC"}}

        await user.send(json.dumps({"type": "PUBLIC_KEY", "payload": "X"}))
        assert await _recv(admin) == {"type": "PUBLIC_KEY", "payload": "X", "senderId": 2}

        await admin.send(json.dumps({"type": "MESSAGE", "targetId": 2, "ciphertext": "c"}))
        assert await _recv(user) == {"type": "MESSAGE", "targetId": 2, "ciphertext": "c", "senderId": 1}

        await admin.close()
        status = await _recv(user)
        assert status["type"] == "STATUS" and "offline" in status["message"]
        with pytest.raises(ConnectionClosed):
            await asyncio.wait_for(user.recv(), timeout=2)


@pytest.mark.asyncio
async def test_user_leaving_is_reported(runtime):
    url = f"ws://127.0.0.1:{runtime.port}/ws"
    async with connect(url) as admin:
        await _recv(admin)
        async with connect(url) as user:
            await _recv(user)
            await _recv(admin)
        left = await _recv(admin)
        assert left["type"] == "USER_LEFT" and left["userId"] == 2


@pytest.mark.asyncio
async def test_index_page_served(runtime):
    response = await _http_get(runtime.port, "/")
    assert response.startswith("HTTP/1.1 200")
    assert "text/html" in response
    assert "<body>chat</body>" in response


@pytest.mark.asyncio
async def test_unknown_path_is_404(runtime):
    response = await _http_get(runtime.port, "/nope")
    assert response.startswith("HTTP/1.1 404")


@pytest.mark.asyncio
async def test_plain_get_on_ws_path_is_400(runtime):
    response = await _http_get(runtime.port, "/ws")
    assert response.startswith("HTTP/1.1 400")
