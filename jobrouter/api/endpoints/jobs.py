from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from jobrouter.api.deps import get_job_service
from jobrouter.core.execution.errors import (
    BackendError,
    BackendTransientError,
    ConfigurationError,
    JobRouterError,
    NotFoundError,
    NotRegisteredError,
    SubmissionError,
)
from jobrouter.core.execution.models import AssignedService, JobConfig
from jobrouter.core.execution.service import JobService

log = logging.getLogger("jobrouter.api.jobs")

router = APIRouter(prefix="/api/v1", tags=["jobs"])

# first match wins
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (NotRegisteredError, 501),
    (BackendTransientError, 503),
    (SubmissionError, 502),
    (BackendError, 502),
    (ConfigurationError, 500),
)


class SubmitResponse(BaseModel):
    job_id: str
    assigned_service: AssignedService
    cloud_resource_path: str
    status: str
    record: Dict[str, Any]


def _http_error(e: JobRouterError) -> HTTPException:
    status = 500
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(e, cls):
            status = code
            break

    detail: Dict[str, Any] = e.context()
    if isinstance(e, NotRegisteredError):
        detail["message"] = "tier unsupported in this deployment"
        detail["service"] = getattr(e.service, "value", e.service)
    if status >= 500:
        log.warning("job operation failed: %s", e)
    return HTTPException(status_code=status, detail=detail)


def _parse_service(service: str) -> AssignedService:
    try:
        return AssignedService(service.strip().upper())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown service: {service} (expected one of {[s.value for s in AssignedService]})",
        )


@router.post("/route")
def route_job(config: JobConfig, svc: JobService = Depends(get_job_service)) -> Dict[str, Any]:
    return svc.route(config).to_dict()


@router.post("/jobs", response_model=SubmitResponse)
def submit_job(
    config: JobConfig,
    request: Request,
    svc: JobService = Depends(get_job_service),
) -> SubmitResponse:
    request.state.job_id = config.job_id
    try:
        rec = svc.submit(config)
    except JobRouterError as e:
        raise _http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    request.state.service = rec.assigned_service.value
    return SubmitResponse(
        job_id=rec.job_id,
        assigned_service=rec.assigned_service,
        cloud_resource_path=rec.cloud_resource_path,
        status=rec.status.value,
        record=rec.to_dict(),
    )


@router.get("/jobs/{job_id}")
def get_job(job_id: str, request: Request, svc: JobService = Depends(get_job_service)) -> Dict[str, Any]:
    request.state.job_id = job_id
    try:
        rec = svc.refresh_status(job_id)
    except JobRouterError as e:
        raise _http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return rec.to_dict()


@router.post("/jobs/{job_id}/cancel")
def cancel_job(job_id: str, request: Request, svc: JobService = Depends(get_job_service)) -> Dict[str, Any]:
    request.state.job_id = job_id
    try:
        rec = svc.cancel(job_id)
    except JobRouterError as e:
        raise _http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return rec.to_dict()


@router.get("/jobs/{job_id}/history")
def job_history(job_id: str, svc: JobService = Depends(get_job_service)) -> Dict[str, Any]:
    try:
        events = svc.history(job_id)
    except JobRouterError as e:
        raise _http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"job_id": job_id, "events": events}


@router.get("/services/{service}/jobs")
def list_service_jobs(
    service: str,
    request: Request,
    svc: JobService = Depends(get_job_service),
) -> Dict[str, Any]:
    assigned = _parse_service(service)
    request.state.service = assigned.value
    try:
        names: List[str] = svc.list_backend_jobs(assigned)
    except JobRouterError as e:
        raise _http_error(e) from e
    return {"service": assigned.value, "jobs": names, "count": len(names)}
