from __future__ import annotations

from fastapi import FastAPI

from jobrouter.api.endpoints import health, jobs, metrics_export
from jobrouter.api.middleware.error_shaping import SafeErrorMiddleware
from jobrouter.api.middleware.request_context import RequestContextMiddleware

app = FastAPI(title="jobrouter", version="0.1.0")

# Order matters: last added runs first.
app.add_middleware(SafeErrorMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(health.router, tags=["health"])
app.include_router(metrics_export.router)
app.include_router(jobs.router)
