from edge.src.routing.table import frontend_route_table
from edge.src.services import static_bundle as static_bundle_module
from edge.src.services.static_bundle import StaticBundle


def test_unmatched_path_serves_entry_document(make_client, bundle):
    with make_client() as c:
        root = c.get("/")
        deep = c.get("/dashboard/42")
    assert root.status_code == 200
    assert deep.status_code == 200
    assert deep.content == root.content == (bundle / "index.html").read_bytes()
    assert deep.headers["content-type"].startswith("text/html")


def test_existing_asset_is_served_with_caching_headers(make_client):
    with make_client() as c:
        r = c.get("/assets/app.js")
    assert r.status_code == 200
    assert r.text == "console.log('app');"
    assert "javascript" in r.headers["content-type"]
    assert r.headers["cache-control"] == "public, max-age=0"
    assert "etag" in r.headers
    assert "last-modified" in r.headers


def test_missing_asset_falls_through_to_entry_document(make_client, bundle):
    with make_client() as c:
        r = c.get("/assets/missing.js")
    assert r.status_code == 200
    assert r.content == (bundle / "index.html").read_bytes()


def test_directory_serves_its_index(make_client):
    with make_client() as c:
        r = c.get("/docs/")
    assert r.status_code == 200
    assert r.text == "<h1>docs</h1>"


def test_resolve_never_escapes_bundle(bundle):
    b = StaticBundle(bundle)
    assert b.resolve("/../secret.txt") is None
    assert b.resolve("/assets/../../secret.txt") is None
    assert b.resolve("/assets/app.js") == (bundle / "assets" / "app.js").resolve()


def test_missing_bundle_is_503(make_client, tmp_path):
    with make_client(static_dir=str(tmp_path / "nope")) as c:
        r = c.get("/dashboard")
    assert r.status_code == 503
    assert r.json()["error"] == "Frontend not available"


def test_unreadable_asset_is_500(make_client, monkeypatch):
    monkeypatch.setattr(static_bundle_module.os, "access", lambda path, mode: False)
    with make_client() as c:
        r = c.get("/assets/app.js")
    assert r.status_code == 500
    assert r.json()["error"] == "Static asset unavailable"


def test_frontend_profile_reserves_api_prefix(make_client, upstream, bundle):
    with make_client(frontend_route_table(), service_name="frontend") as c:
        api = c.get("/api/events")
        events = c.get("/events-api/events")
        health = c.get("/health")
    assert api.status_code == 502
    assert api.json()["error"] == "API Gateway not configured for static server"
    assert events.status_code == 200
    assert events.content == (bundle / "index.html").read_bytes()
    assert health.json()["service"] == "frontend"
    assert upstream.requests == []
