"""Catch-all surface: proxied prefixes, static bundle, entry-document fallback."""

import logging

from fastapi import APIRouter, Request, WebSocket
from starlette.types import Scope

from ...engine import upstream, websocket_relay
from ...errors import ReservedPrefix, UpgradeRejected


logger = logging.getLogger(__name__)

router = APIRouter()

# WebDAV verbs included. CONNECT opens a tunnel and is never forwarded.
PROXY_METHODS = [
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "OPTIONS",
    "TRACE",
    "PROPFIND",
    "PROPPATCH",
    "MKCOL",
    "COPY",
    "MOVE",
    "LOCK",
    "UNLOCK",
    "REPORT",
    "SEARCH",
    "PURGE",
]


def request_path(scope: Scope) -> str:
    """Undecoded request path, so percent-escapes reach the backend untouched."""
    raw = scope.get("raw_path")
    if raw:
        return raw.split(b"?", 1)[0].decode("latin-1")
    return scope["path"]


@router.websocket("/{full_path:path}")
async def proxy_websocket(websocket: WebSocket, full_path: str):
    state = websocket.app.state
    path = request_path(websocket.scope)
    match = state.route_table.match(path)
    if match is None or not match.rule.allow_websocket_upgrade:
        # Cannot answer with a JSON body once an upgrade is in flight.
        await websocket_relay.reject(websocket, UpgradeRejected(path))
        return
    await websocket_relay.relay(websocket, match, verbose=state.verbose)


@router.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def dispatch(request: Request, full_path: str):
    state = request.app.state
    path = request_path(request.scope)

    match = state.route_table.match(path)
    if match is not None:
        return await upstream.forward(request, match, verbose=state.verbose)

    reserved = state.route_table.reserved_message(path)
    if reserved is not None:
        prefix, message = reserved
        raise ReservedPrefix(prefix, message)

    bundle = state.static_bundle
    file_path = bundle.resolve(request.url.path)
    if file_path is not None:
        if state.verbose:
            logger.info("static_file path=%s file=%s", request.url.path, file_path)
        return bundle.file_response(file_path)

    if state.verbose:
        logger.info("entry_document path=%s", request.url.path)
    return bundle.file_response(bundle.entry_document())
