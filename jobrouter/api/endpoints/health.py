from __future__ import annotations

import logging

from fastapi import APIRouter
from starlette.responses import JSONResponse

from jobrouter.api.deps import get_job_service
from jobrouter.core.execution.errors import JobRouterError

log = logging.getLogger("jobrouter.health")

router = APIRouter()


@router.get("/health/live")
def live():
    return {"status": "ok"}


@router.get("/health/ready")
def ready():
    """
    Ready once the process-wide JobService exists: at least one tier
    configured and every configured client constructible. The service is
    cached, so probes after the first reuse its clients.
    """
    try:
        svc = get_job_service()
    except JobRouterError as e:
        log.warning("readiness check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "problems": [f"{type(e).__name__}: {e.message}"]},
        )

    return {"status": "ready", "services": [s.value for s in svc.dispatcher.registered_services()]}
