import logging

from fastapi import APIRouter, Request

from ... import config
from ...engine import upstream
from ...services.probes import probe_backends
from ..schemas.health import BackendProbe, DiagnosticsResponse
from .health import _timestamp


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/debug/test-backends", response_model=DiagnosticsResponse, response_model_exclude_none=True)
async def test_backends(request: Request):
    """Probe every configured backend concurrently and report online/offline per backend."""
    state = request.app.state
    logger.info("diagnostics probing %d backends", len(state.route_table.backends()))
    results = await probe_backends(
        upstream.get_client(),
        state.route_table,
        timeout_seconds=config.PROBE_TIMEOUT_SECONDS,
    )
    return DiagnosticsResponse(
        timestamp=_timestamp(),
        unified_server_port=state.port,
        backend_services={label: BackendProbe(**result.to_dict()) for label, result in results.items()},
    )
