from typing import Dict, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Liveness payload. `port` and `backend_services` only in verbose mode."""

    status: str
    service: str
    timestamp: str
    port: Optional[int] = None
    backend_services: Optional[Dict[str, str]] = None


class BackendProbe(BaseModel):
    """One backend's diagnostic result."""

    status: str
    statusCode: Optional[int] = None
    error: Optional[str] = None
    proxy_path: Optional[str] = None
    direct_url: str


class DiagnosticsResponse(BaseModel):
    timestamp: str
    unified_server_port: int
    backend_services: Dict[str, BackendProbe]
