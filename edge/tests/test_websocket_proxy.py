import asyncio
from types import SimpleNamespace

import pytest
from starlette.datastructures import URL, Headers
from starlette.websockets import WebSocketDisconnect, WebSocketState

from edge.src.engine import websocket_relay
from edge.src.routing.table import default_route_table


class _FakeConnection:
    def __init__(self, subprotocol=None):
        self.subprotocol = subprotocol
        self.sent = []
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    async def send(self, data):
        self.sent.append(data)
        if isinstance(data, bytes):
            await self._queue.put(b"echo:" + data)
        else:
            await self._queue.put(f"echo:{data}")

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self):
        self.closed = True
        await self._queue.put(None)


@pytest.fixture
def fake_upstream(monkeypatch):
    state = {"calls": [], "connection": None, "subprotocol": None, "error": None}

    async def fake_connect(url, headers, subprotocols):
        state["calls"].append({"url": url, "headers": dict(headers), "subprotocols": subprotocols})
        if state["error"] is not None:
            raise state["error"]
        state["connection"] = _FakeConnection(subprotocol=state["subprotocol"])
        return state["connection"]

    monkeypatch.setattr(websocket_relay, "_connect_upstream", fake_connect)
    return state


def test_socket_io_upgrade_is_relayed_to_maps_service(make_client, fake_upstream):
    with make_client() as c:
        with c.websocket_connect("/socket.io/?EIO=4&transport=websocket") as ws:
            ws.send_text("40")
            assert ws.receive_text() == "echo:40"
            ws.send_bytes(b"\x01\x02")
            assert ws.receive_bytes() == b"echo:\x01\x02"

    call = fake_upstream["calls"][0]
    assert call["url"] == "ws://localhost:3001/socket.io/?EIO=4&transport=websocket"
    assert call["headers"]["x-forwarded-for"] == "testclient"
    assert "sec-websocket-key" not in call["headers"]
    assert fake_upstream["connection"].sent == ["40", b"\x01\x02"]
    assert fake_upstream["connection"].closed is True


def test_subprotocol_is_negotiated_with_upstream(make_client, fake_upstream):
    fake_upstream["subprotocol"] = "chat"
    with make_client() as c:
        with c.websocket_connect("/socket.io/", subprotocols=["chat", "superchat"]) as ws:
            assert ws.accepted_subprotocol == "chat"
    assert fake_upstream["calls"][0]["subprotocols"] == ["chat", "superchat"]


@pytest.mark.parametrize("path", ["/api/anything", "/maps-api/live", "/dashboard"])
def test_upgrade_on_non_websocket_route_is_rejected(make_client, fake_upstream, path):
    with make_client() as c:
        with pytest.raises(WebSocketDisconnect) as exc:
            with c.websocket_connect(path):
                pass
    assert exc.value.code == websocket_relay.POLICY_VIOLATION
    assert fake_upstream["calls"] == []


def test_unreachable_websocket_backend_refuses_upgrade(make_client, fake_upstream):
    fake_upstream["error"] = ConnectionRefusedError(111, "Connection refused")
    with make_client() as c:
        with pytest.raises(WebSocketDisconnect) as exc:
            with c.websocket_connect("/socket.io/?EIO=4&transport=websocket"):
                pass
    assert exc.value.code == websocket_relay.INTERNAL_ERROR


def test_client_user_agent_is_sent_upstream_once(make_client, monkeypatch):
    seen = {}

    async def refuse(url, **kwargs):
        seen.update(kwargs)
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(websocket_relay.websockets, "connect", refuse)
    with make_client() as c:
        with pytest.raises(WebSocketDisconnect) as exc:
            with c.websocket_connect("/socket.io/", headers={"User-Agent": "exhibition-kiosk/2.1"}):
                pass
    assert exc.value.code == websocket_relay.INTERNAL_ERROR
    assert seen["user_agent_header"] is None
    agents = [value for name, value in seen["additional_headers"] if name.lower() == "user-agent"]
    assert agents == ["exhibition-kiosk/2.1"]


class _IdleClientSocket:
    """Accepted client socket that never sends a frame."""

    def __init__(self):
        self.url = URL("ws://testserver/socket.io/?EIO=4&transport=websocket")
        self.headers = Headers({"host": "testserver"})
        self.client = SimpleNamespace(host="testclient")
        self.client_state = WebSocketState.CONNECTING
        self.closed = False

    async def accept(self, subprotocol=None):
        self.client_state = WebSocketState.CONNECTED

    async def receive(self):
        await asyncio.Event().wait()

    async def close(self, code=1000):
        self.closed = True
        self.client_state = WebSocketState.DISCONNECTED


@pytest.mark.asyncio
async def test_cancelled_relay_still_closes_both_sides(fake_upstream):
    client_socket = _IdleClientSocket()
    match = default_route_table().match("/socket.io/")
    task = asyncio.create_task(websocket_relay.relay(client_socket, match))
    for _ in range(100):
        if client_socket.client_state == WebSocketState.CONNECTED:
            break
        await asyncio.sleep(0)
    await asyncio.sleep(0)

    task.cancel()
    await task

    assert fake_upstream["connection"].closed is True
    assert client_socket.closed is True
