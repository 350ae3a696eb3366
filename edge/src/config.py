"""Configuration for the Edge Router."""

import os
from dotenv import load_dotenv

# Load local env files if present (never commit these).
# - `.env.local` is convenient for local dev (Vite also loads it automatically).
# - `.env` is the default for docker-compose / process-manager substitution.
load_dotenv(dotenv_path=".env.local", override=False)
load_dotenv(dotenv_path=".env", override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _env_timeout(name: str, default: str) -> float | None:
    value = float(os.getenv(name, default))
    # 0 disables the timeout entirely (socket defaults apply).
    return value if value > 0 else None


# Server profile: "unified" proxies every backend, "frontend" only serves the bundle.
EDGE_PROFILE = os.getenv("EDGE_PROFILE", "unified").lower()

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000" if EDGE_PROFILE == "frontend" else "8080"))

# Verbose mode: per-request logging, proxy lifecycle logging, /debug/test-backends.
EDGE_VERBOSE = _env_flag("EDGE_VERBOSE")

SERVICE_NAME = os.getenv(
    "SERVICE_NAME",
    "frontend" if EDGE_PROFILE == "frontend" else "Unified Exhibition App Server",
)

# Prebuilt frontend bundle (vite `build.outDir`).
STATIC_DIR = os.getenv("STATIC_DIR", "dist")
STATIC_ENTRY_DOCUMENT = os.getenv("STATIC_ENTRY_DOCUMENT", "index.html")
STATIC_CACHE_CONTROL = os.getenv("STATIC_CACHE_CONTROL", "public, max-age=0")

# Backend origins. Hard-coded defaults match the process-manager ports.
API_GATEWAY_URL = os.getenv("API_GATEWAY_URL", "http://localhost:5000")
EVENTS_API_URL = os.getenv("EVENTS_API_URL", "http://localhost:3036")
HEATMAP_API_URL = os.getenv("HEATMAP_API_URL", "http://localhost:3897")
MAPS_API_URL = os.getenv("MAPS_API_URL", "http://localhost:3001")
AUTH_API_URL = os.getenv("AUTH_API_URL", "http://localhost:5004")

# Upstream client hardening knobs
UPSTREAM_CONNECT_TIMEOUT_SECONDS = _env_timeout("UPSTREAM_CONNECT_TIMEOUT_SECONDS", "5")
UPSTREAM_READ_TIMEOUT_SECONDS = _env_timeout("UPSTREAM_READ_TIMEOUT_SECONDS", "60")
UPSTREAM_MAX_CONNECTIONS = int(os.getenv("UPSTREAM_MAX_CONNECTIONS", "100"))
UPSTREAM_MAX_KEEPALIVE_CONNECTIONS = int(os.getenv("UPSTREAM_MAX_KEEPALIVE_CONNECTIONS", "20"))

# Diagnostics probe timeout (per backend, probes run concurrently).
PROBE_TIMEOUT_SECONDS = float(os.getenv("PROBE_TIMEOUT_SECONDS", "3"))

# Largest WebSocket frame relayed in either direction.
WS_MAX_MESSAGE_BYTES = int(os.getenv("WS_MAX_MESSAGE_BYTES", str(16 * 1024 * 1024)))
