"""Route Table: ordered, immutable prefix -> backend forwarding rules."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional
from urllib.parse import urlsplit

from .. import config


@dataclass(frozen=True)
class Backend:
    """A backend origin the router forwards to."""

    key: str
    label: str
    origin: str

    @property
    def address(self) -> str:
        """host:port, as reported by the verbose liveness payload."""
        parts = urlsplit(self.origin)
        return parts.netloc

    @property
    def ws_origin(self) -> str:
        parts = urlsplit(self.origin)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return f"{scheme}://{parts.netloc}"


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    target: Backend
    strip_prefix: bool = True
    rewrite_to: Optional[str] = None
    allow_websocket_upgrade: bool = False
    # Shown in the 502 body as "<label> unavailable"; defaults to the backend label.
    label: Optional[str] = None

    @property
    def error_label(self) -> str:
        return self.label or self.target.label

    def matches(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix + "/")

    def forward_path(self, path: str) -> str:
        if not self.strip_prefix:
            return path
        remainder = path[len(self.prefix):]
        forwarded = (self.rewrite_to or "") + remainder
        if not forwarded.startswith("/"):
            forwarded = "/" + forwarded
        return forwarded


@dataclass(frozen=True)
class RouteMatch:
    rule: RouteRule
    forwarded_path: str

    def upstream_url(self, query: str = "") -> str:
        url = self.rule.target.origin.rstrip("/") + self.forwarded_path
        return f"{url}?{query}" if query else url

    def upstream_ws_url(self, query: str = "") -> str:
        url = self.rule.target.ws_origin + self.forwarded_path
        return f"{url}?{query}" if query else url


def _normalize_prefix(prefix: str) -> str:
    normalized = "/" + prefix.strip("/")
    if normalized == "/":
        raise ValueError("A rule prefix cannot be '/'; the catch-all is implicit")
    return normalized


@dataclass(frozen=True)
class RouteTable:
    """Rules in priority order. The first matching rule wins.

    Construction rejects duplicate prefixes and rules that an earlier, less
    specific rule would always shadow, so declaration order and specificity
    never disagree.
    """

    rules: tuple[RouteRule, ...] = ()
    # Prefixes answered locally with 502 because this profile has no backend for them.
    reserved: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        rules = tuple(replace(rule, prefix=_normalize_prefix(rule.prefix)) for rule in self.rules)
        seen: list[str] = []
        for rule in rules:
            if rule.prefix in seen:
                raise ValueError(f"Duplicate route prefix: {rule.prefix}")
            for earlier in seen:
                if rule.prefix.startswith(earlier + "/"):
                    raise ValueError(
                        f"Route {rule.prefix} is shadowed by earlier route {earlier}; "
                        "declare the more specific prefix first"
                    )
            seen.append(rule.prefix)
        object.__setattr__(self, "rules", rules)
        object.__setattr__(
            self, "reserved", tuple((_normalize_prefix(p), message) for p, message in self.reserved)
        )

    def match(self, path: str) -> Optional[RouteMatch]:
        for rule in self.rules:
            if rule.matches(path):
                return RouteMatch(rule=rule, forwarded_path=rule.forward_path(path))
        return None

    def reserved_message(self, path: str) -> Optional[tuple[str, str]]:
        for prefix, message in self.reserved:
            if path == prefix or path.startswith(prefix + "/"):
                return prefix, message
        return None

    def backends(self) -> list[Backend]:
        """Unique backends in declaration order."""
        out: list[Backend] = []
        for rule in self.rules:
            if rule.target not in out:
                out.append(rule.target)
        return out

    def proxy_path_for(self, backend: Backend) -> Optional[str]:
        for rule in self.rules:
            if rule.target == backend:
                return rule.prefix
        return None

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)


def default_backends() -> dict[str, Backend]:
    return {
        "api-gateway": Backend("api-gateway", "API Gateway", config.API_GATEWAY_URL),
        "events-api": Backend("events-api", "Events API", config.EVENTS_API_URL),
        "heatmap-api": Backend("heatmap-api", "Heatmap API", config.HEATMAP_API_URL),
        "maps-api": Backend("maps-api", "Maps API", config.MAPS_API_URL),
        "auth-api": Backend("auth-api", "Auth API", config.AUTH_API_URL),
    }


def default_route_table(backends: dict[str, Backend] | None = None) -> RouteTable:
    b = backends or default_backends()
    return RouteTable(
        rules=(
            RouteRule("/api", b["api-gateway"]),
            RouteRule("/events-api", b["events-api"]),
            RouteRule("/heatmap-api", b["heatmap-api"]),
            RouteRule("/maps-api", b["maps-api"]),
            RouteRule(
                "/socket.io",
                b["maps-api"],
                strip_prefix=False,
                allow_websocket_upgrade=True,
                label="WebSocket",
            ),
            RouteRule("/auth", b["auth-api"]),
            RouteRule("/admin-api", b["api-gateway"], rewrite_to="/admin", label="Admin API"),
        )
    )


def frontend_route_table() -> RouteTable:
    return RouteTable(
        rules=(),
        reserved=(("/api", "API Gateway not configured for static server"),),
    )


def route_table_for_profile(profile: str) -> RouteTable:
    if profile == "frontend":
        return frontend_route_table()
    if profile == "unified":
        return default_route_table()
    raise ValueError(f"Unknown EDGE_PROFILE: {profile}")


def describe(table: Iterable[RouteRule]) -> list[str]:
    lines = []
    for rule in table:
        if not rule.strip_prefix:
            rewrite = "as-is"
        elif rule.rewrite_to:
            rewrite = f"{rule.prefix} -> {rule.rewrite_to}"
        else:
            rewrite = f"strip {rule.prefix}"
        ws = " (websocket)" if rule.allow_websocket_upgrade else ""
        lines.append(f"{rule.prefix} -> {rule.target.origin} [{rewrite}]{ws}")
    return lines
