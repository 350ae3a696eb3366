"""Backend liveness probes for the diagnostics endpoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..routing.table import Backend, RouteTable

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    backend: Backend
    online: bool
    proxy_path: Optional[str]
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": "online" if self.online else "offline"}
        if self.online:
            out["statusCode"] = self.status_code
        else:
            out["error"] = self.error
        out["proxy_path"] = self.proxy_path
        out["direct_url"] = self.backend.origin
        return out


async def probe_backend(
    client: httpx.AsyncClient,
    backend: Backend,
    *,
    proxy_path: Optional[str] = None,
    timeout_seconds: float = 3.0,
) -> ProbeResult:
    """GET the backend origin. Any HTTP answer, whatever the status, counts as online."""
    try:
        resp = await client.get(backend.origin, timeout=timeout_seconds)
        await resp.aclose()
    except httpx.HTTPError as e:
        error = str(e) or e.__class__.__name__
        logger.info("probe backend=%s status=offline error=%s", backend.key, error)
        return ProbeResult(backend=backend, online=False, proxy_path=proxy_path, error=error)

    logger.info("probe backend=%s status=online code=%s", backend.key, resp.status_code)
    return ProbeResult(backend=backend, online=True, proxy_path=proxy_path, status_code=resp.status_code)


async def probe_backends(
    client: httpx.AsyncClient,
    table: RouteTable,
    *,
    timeout_seconds: float = 3.0,
) -> Dict[str, ProbeResult]:
    backends: List[Backend] = table.backends()
    tasks = [
        probe_backend(
            client,
            backend,
            proxy_path=table.proxy_path_for(backend),
            timeout_seconds=timeout_seconds,
        )
        for backend in backends
    ]
    results = await asyncio.gather(*tasks)
    return {backend.label: result for backend, result in zip(backends, results)}
