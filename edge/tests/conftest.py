import os

# Ensure config reads these during import in tests.
os.environ.setdefault("EDGE_PROFILE", "unified")
os.environ.setdefault("EDGE_VERBOSE", "false")
os.environ.setdefault("STATIC_DIR", "dist-not-built")
os.environ.setdefault("API_GATEWAY_URL", "http://localhost:5000")
os.environ.setdefault("EVENTS_API_URL", "http://localhost:3036")
os.environ.setdefault("HEATMAP_API_URL", "http://localhost:3897")
os.environ.setdefault("MAPS_API_URL", "http://localhost:3001")
os.environ.setdefault("AUTH_API_URL", "http://localhost:5004")

import httpx
import pytest
from fastapi.testclient import TestClient

from edge.src.app.main import create_app


INDEX_HTML = b"<!doctype html><html><body><div id=root></div></body></html>"


async def _chunks(body: bytes):
    yield body


def as_stream(response: httpx.Response) -> httpx.Response:
    """Re-wrap an eagerly read response so the proxy can still `aiter_raw()` it.

    httpx reads `content=`/`json=` bodies at construction, which a real
    transport never does.
    """
    if not isinstance(response.stream, httpx.ByteStream):
        return response
    return httpx.Response(
        response.status_code,
        headers=response.headers.multi_items(),
        content=_chunks(response.content),
    )


class FakeUpstream:
    """httpx.MockTransport handler that records every forwarded request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self.down: set[str] = set()
        self.responder = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        address = f"{request.url.host}:{request.url.port}"
        if address in self.down:
            raise httpx.ConnectError("connect ECONNREFUSED " + address, request=request)
        body = await request.aread()
        self.requests.append(request)
        self.bodies.append(body)
        if self.responder is not None:
            return as_stream(self.responder(request))
        return as_stream(
            httpx.Response(
                200,
                json={
                    "address": address,
                    "method": request.method,
                    "path": request.url.path,
                    "query": request.url.query.decode(),
                },
            )
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def bundle(tmp_path):
    root = tmp_path / "dist"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "assets" / "app.js").write_text("console.log('app');")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<h1>docs</h1>")
    (tmp_path / "secret.txt").write_text("outside the bundle")
    return root


@pytest.fixture
def make_client(upstream, bundle):
    def _make(route_table=None, **kwargs):
        kwargs.setdefault("static_dir", str(bundle))
        kwargs.setdefault("port", 8080)
        app = create_app(route_table, transport=httpx.MockTransport(upstream.handler), **kwargs)
        return TestClient(app)

    return _make
