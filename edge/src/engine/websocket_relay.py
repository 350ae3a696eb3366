"""WebSocket upgrade relay for rules with allow_websocket_upgrade."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import websockets
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed, WebSocketException

from .. import config
from ..routing.table import RouteMatch

logger = logging.getLogger(__name__)

# Close codes used before the handshake is accepted. Starlette turns a
# close-before-accept into an HTTP 403 on the upgrade request.
POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011

# Negotiated by the websockets client itself.
_HANDSHAKE_HEADERS = frozenset(
    {
        "host",
        "upgrade",
        "connection",
        "sec-websocket-key",
        "sec-websocket-version",
        "sec-websocket-extensions",
        "sec-websocket-protocol",
        "sec-websocket-accept",
        "content-length",
        "transfer-encoding",
    }
)


def _connect_upstream(url: str, headers: list[tuple[str, str]], subprotocols: list[str] | None) -> Any:
    return websockets.connect(
        url,
        additional_headers=headers,
        subprotocols=subprotocols or None,
        max_size=config.WS_MAX_MESSAGE_BYTES,
        open_timeout=config.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
        # The client's own User-Agent is already in `headers`.
        user_agent_header=None,
    )


def upstream_headers(websocket: WebSocket) -> list[tuple[str, str]]:
    headers = [
        (name, value)
        for name, value in websocket.headers.items()
        if name.lower() not in _HANDSHAKE_HEADERS and not name.lower().startswith("x-forwarded-")
    ]
    client_host = websocket.client.host if websocket.client else ""
    prior = websocket.headers.get("x-forwarded-for")
    forwarded_for = f"{prior}, {client_host}" if prior else client_host
    if forwarded_for:
        headers.append(("x-forwarded-for", forwarded_for))
    host = websocket.headers.get("host")
    if host:
        headers.append(("x-forwarded-host", host))
    headers.append(("x-forwarded-proto", "wss" if websocket.url.scheme == "wss" else "ws"))
    return headers


def requested_subprotocols(websocket: WebSocket) -> list[str]:
    raw = websocket.headers.get("sec-websocket-protocol", "")
    return [p.strip() for p in raw.split(",") if p.strip()]


async def reject(websocket: WebSocket, reason: object, *, code: int = POLICY_VIOLATION) -> None:
    logger.warning("websocket_rejected path=%s reason=%s", websocket.url.path, reason)
    await websocket.close(code=code)


async def relay(websocket: WebSocket, match: RouteMatch, *, verbose: bool = False) -> None:
    """Open the upstream socket, accept the client and pump frames both ways.

    The upstream handshake happens first so an unreachable backend refuses
    the client upgrade instead of accepting and closing immediately.
    """
    rule = match.rule
    url = match.upstream_ws_url(websocket.url.query)
    if verbose:
        logger.info("websocket_dispatch rule=%s path=%s -> %s", rule.prefix, websocket.url.path, url)

    try:
        connection = await _connect_upstream(url, upstream_headers(websocket), requested_subprotocols(websocket))
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        logger.warning("websocket_upstream_error rule=%s url=%s error=%s", rule.prefix, url, e)
        await reject(websocket, f"{rule.error_label} unavailable", code=INTERNAL_ERROR)
        return

    try:
        await websocket.accept(subprotocol=getattr(connection, "subprotocol", None))
        await _pump(websocket, connection)
    except asyncio.CancelledError:
        # The server cancels the handler once the client side is gone.
        logger.debug("websocket_cancelled path=%s", websocket.url.path)
    finally:
        await connection.close()
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
        if verbose:
            logger.info("websocket_closed rule=%s path=%s", rule.prefix, websocket.url.path)


async def _pump(websocket: WebSocket, connection: Any) -> None:
    async def client_to_upstream() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            if message.get("text") is not None:
                await connection.send(message["text"])
            elif message.get("bytes") is not None:
                await connection.send(message["bytes"])

    async def upstream_to_client() -> None:
        async for data in connection:
            if isinstance(data, bytes):
                await websocket.send_bytes(data)
            else:
                await websocket.send_text(data)

    tasks = [
        asyncio.create_task(client_to_upstream()),
        asyncio.create_task(upstream_to_client()),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    for task in done:
        if task.cancelled():
            continue
        exc = task.exception()
        if exc is None or isinstance(exc, (WebSocketDisconnect, ConnectionClosed)):
            continue
        logger.warning("websocket_relay_error path=%s error=%s", websocket.url.path, exc)
