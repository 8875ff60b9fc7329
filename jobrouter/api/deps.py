from __future__ import annotations

from functools import lru_cache

from jobrouter.core.config import Settings, load_settings
from jobrouter.core.execution.service import JobService, file_job_service
from jobrouter.core.execution.wiring import build_dispatcher


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_job_service() -> JobService:
    """Process-wide JobService; tests replace it via ``app.dependency_overrides``."""
    settings = get_settings()
    return file_job_service(
        build_dispatcher(settings),
        store_dir=settings.store_dir,
        timeout=settings.operation_timeout_seconds,
    )
