from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ..schemas.health import HealthResponse


router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health(request: Request):
    """Liveness probe. Answered locally, never forwarded, whatever the backends' state."""
    state = request.app.state
    payload = HealthResponse(status="OK", service=state.service_name, timestamp=_timestamp())
    if state.verbose:
        payload.port = state.port
        payload.backend_services = {b.key: b.address for b in state.route_table.backends()}
    return payload
