"""Upstream HTTP forwarding over a shared, pooled httpx client."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse

from .. import config
from ..errors import UpstreamProtocolError, UpstreamUnavailable
from ..routing.table import RouteMatch

logger = logging.getLogger(__name__)

# RFC 7230 section 6.1 hop-by-hop headers, never forwarded in either direction.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

_CLIENT: httpx.AsyncClient | None = None


def build_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    limits = httpx.Limits(
        max_connections=max(1, config.UPSTREAM_MAX_CONNECTIONS),
        max_keepalive_connections=max(1, config.UPSTREAM_MAX_KEEPALIVE_CONNECTIONS),
    )
    timeout = httpx.Timeout(
        connect=config.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
        read=config.UPSTREAM_READ_TIMEOUT_SECONDS,
        write=config.UPSTREAM_READ_TIMEOUT_SECONDS,
        pool=config.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
    )
    # Backends live on the local network; never route them through HTTP(S)_PROXY.
    return httpx.AsyncClient(timeout=timeout, limits=limits, transport=transport, trust_env=False)


def set_client(client: httpx.AsyncClient | None) -> None:
    global _CLIENT
    _CLIENT = client


def get_client() -> httpx.AsyncClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    logger.warning("Upstream httpx client not set via lifespan; creating a fallback client.")
    _CLIENT = build_client()
    return _CLIENT


def _client_host(request: Request) -> str:
    return request.client.host if request.client else ""


def forwarded_headers(request: Request) -> list[tuple[str, str]]:
    """Request headers for the upstream hop.

    Drops hop-by-hop headers and Host (changeOrigin: httpx derives Host from
    the target URL) and appends the standard X-Forwarded-* set.
    """
    headers: list[tuple[str, str]] = []
    prior_forwarded_for = None
    for name, value in request.headers.items():
        lower = name.lower()
        if lower in HOP_BY_HOP_HEADERS or lower == "host":
            continue
        if lower == "x-forwarded-for":
            prior_forwarded_for = value
            continue
        if lower in ("x-forwarded-host", "x-forwarded-proto", "x-forwarded-port"):
            continue
        headers.append((name, value))

    client_host = _client_host(request)
    forwarded_for = f"{prior_forwarded_for}, {client_host}" if prior_forwarded_for else client_host
    if forwarded_for:
        headers.append(("x-forwarded-for", forwarded_for))
    host = request.headers.get("host")
    if host:
        headers.append(("x-forwarded-host", host))
    headers.append(("x-forwarded-proto", request.url.scheme))
    if request.url.port:
        headers.append(("x-forwarded-port", str(request.url.port)))

    request_id = getattr(request.state, "request_id", None)
    if request_id and "x-request-id" not in request.headers:
        headers.append(("x-request-id", request_id))
    return headers


def _response_headers(resp: httpx.Response) -> list[tuple[bytes, bytes]]:
    raw: list[tuple[bytes, bytes]] = []
    for name, value in resp.headers.multi_items():
        if name.lower() in HOP_BY_HOP_HEADERS:
            continue
        raw.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    return raw


def _has_body(request: Request) -> bool:
    return "content-length" in request.headers or "transfer-encoding" in request.headers


async def forward(request: Request, match: RouteMatch, *, verbose: bool = False) -> StreamingResponse:
    """Forward `request` to the matched backend and stream the answer back.

    Connection failures surface as UpstreamUnavailable/UpstreamProtocolError
    before any byte reaches the client. No retries.
    """
    rule = match.rule
    url = match.upstream_url(request.url.query)
    client = get_client()

    upstream_request = client.build_request(
        request.method,
        url,
        headers=forwarded_headers(request),
        content=request.stream() if _has_body(request) else None,
    )
    if verbose:
        logger.info("proxy_dispatch rule=%s %s %s -> %s", rule.prefix, request.method, request.url.path, url)

    try:
        upstream_response = await client.send(upstream_request, stream=True)
    except httpx.RemoteProtocolError as e:
        logger.warning("proxy_error rule=%s url=%s error=%s", rule.prefix, url, _describe(e))
        raise UpstreamProtocolError(rule.error_label, rule.target.key, _describe(e)) from e
    except httpx.TransportError as e:
        logger.warning("proxy_error rule=%s url=%s error=%s", rule.prefix, url, _describe(e))
        raise UpstreamUnavailable(rule.error_label, rule.target.key, _describe(e)) from e

    if verbose:
        logger.info(
            "proxy_response rule=%s status=%s path=%s", rule.prefix, upstream_response.status_code, request.url.path
        )

    response = StreamingResponse(
        _relay_body(upstream_response, rule.prefix, url),
        status_code=upstream_response.status_code,
    )
    response.raw_headers = _response_headers(upstream_response)
    return response


async def _relay_body(upstream_response: httpx.Response, prefix: str, url: str) -> AsyncIterator[bytes]:
    # Closing in `finally` also runs when the client disconnects and the
    # response task is cancelled, which aborts the upstream request.
    try:
        async for chunk in upstream_response.aiter_raw():
            yield chunk
    except httpx.TransportError as e:
        # Status and headers are already on the wire; abort the client connection.
        logger.warning("proxy_stream_error rule=%s url=%s error=%s", prefix, url, _describe(e))
        raise
    finally:
        await upstream_response.aclose()


def _describe(exc: BaseException) -> str:
    # httpx timeouts frequently carry an empty message.
    return str(exc) or exc.__class__.__name__
