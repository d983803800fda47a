"""
Soporte API — Health Check Route
==================================

What:  GET /api/health for platform probes and the frontend's status badge.
How:   Reports the readiness gate (set by the startup table check), the
       storage mode and, when disk storage is in use, whether UPLOADS_DIR
       exists and is writable. Never opens a database connection itself.

Status levels:
    ok     gate open and (when disk storage is used) uploads dir writable → 200
    error  gate closed or uploads dir unusable                           → 200
    error  the probe itself failed unexpectedly                          → 500
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from soporte import __version__
from soporte.bootstrap import DatabaseReadiness, get_readiness
from soporte.schemas.computador import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

_start_time = time.time()

STORAGE_DESCRIPTIONS = {
    "local": "local_storage",
    "remote": "supabase_storage",
    "hybrid": "supabase_storage + local_storage",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_exclude_none=True,
    summary="Service health check",
)
async def health_check(
    request: Request,
    readiness: DatabaseReadiness = Depends(get_readiness),
):
    attachments = request.app.state.attachments
    mode = attachments.mode
    body = {
        "timestamp": _timestamp(),
        "version": __version__,
        "database": "connected" if readiness.ready else "disconnected",
        "storage": mode,
        "mode": STORAGE_DESCRIPTIONS[mode],
        "uptime": round(time.time() - _start_time, 2),
    }

    try:
        healthy = readiness.ready
        store = attachments.local_store
        if store is not None:
            exists = store.root.is_dir()
            writable = exists and store.is_writable()
            body.update(uploadsDir=str(store.root), uploadsExists=exists, uploadsWritable=writable)
            healthy = healthy and writable
    except Exception as e:
        logger.error("Health probe failed: %s", str(e), exc_info=True)
        body.update(status="error", error=str(e))
        return JSONResponse(status_code=500, content=body)

    if not readiness.ready:
        logger.warning("Health check: database not ready (%s)", readiness.error)
    return HealthResponse(status="ok" if healthy else "error", **body)
