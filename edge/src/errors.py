"""Edge Router exception hierarchy.

Shared by the routing table, the upstream engine, the static bundle and the
app so every module raises and catches the same types.
"""

from __future__ import annotations


class EdgeError(Exception):
    """Base for all edge-router errors."""


class BindError(EdgeError):
    """The listening socket could not be claimed at start-up (fatal)."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Cannot bind {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class UpstreamError(EdgeError):
    """A proxied request failed before a response could be streamed back."""

    status_code = 502

    def __init__(self, label: str, backend: str, details: str):
        super().__init__(f"{label} unavailable: {details}")
        self.label = label
        self.backend = backend
        self.details = details

    def to_payload(self) -> dict[str, str]:
        return {"error": f"{self.label} unavailable", "details": self.details, "backend": self.backend}


class UpstreamUnavailable(UpstreamError):
    """Connection refused, DNS failure or timeout reaching a backend."""


class UpstreamProtocolError(UpstreamError):
    """The backend answered with something that is not valid HTTP."""


class ReservedPrefix(EdgeError):
    """The path belongs to a backend this profile does not proxy."""

    def __init__(self, prefix: str, message: str):
        super().__init__(message)
        self.prefix = prefix
        self.message = message


class StaticAssetError(EdgeError):
    """An existing bundle file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot read static asset {path}: {reason}")
        self.path = path
        self.reason = reason


class EntryDocumentMissing(EdgeError):
    """The bundle has no entry document (frontend not built)."""


class UpgradeRejected(EdgeError):
    """A WebSocket upgrade was attempted on a route that does not allow it."""

    def __init__(self, path: str):
        super().__init__(f"WebSocket upgrade not allowed for {path}")
        self.path = path
