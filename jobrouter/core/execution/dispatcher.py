"""Routes job operations to the provider registered for a tier.

The registry is fixed at construction and read-only afterwards, so one
Dispatcher can be shared across threads. Every operation is plain
forwarding: no retry, no translation. Retry policy belongs to the caller.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import List, Mapping, Optional

from .errors import ConfigurationError, NotRegisteredError
from .models import AssignedService, JobConfig, JobResult, JobStatus
from .providers.base import ExecutionProvider

_log = logging.getLogger("jobrouter.dispatcher")


class Dispatcher:
    def __init__(
        self,
        *,
        cloud_tasks: Optional[ExecutionProvider] = None,
        cloud_run_jobs: Optional[ExecutionProvider] = None,
        cloud_batch: Optional[ExecutionProvider] = None,
    ):
        providers = {}
        if cloud_tasks is not None:
            providers[AssignedService.CLOUD_TASKS] = cloud_tasks
        if cloud_run_jobs is not None:
            providers[AssignedService.CLOUD_RUN_JOB] = cloud_run_jobs
        if cloud_batch is not None:
            providers[AssignedService.CLOUD_BATCH] = cloud_batch

        if not providers:
            raise ConfigurationError("dispatcher: at least one provider must be configured", operation="configure")

        self._providers: Mapping[AssignedService, ExecutionProvider] = MappingProxyType(providers)

        for svc, p in self._providers.items():
            _log.info("Dispatcher: registered %s provider (service_type=%s)", svc.value, p.service_type())

    def registered_services(self) -> List[AssignedService]:
        return [s for s in AssignedService if s in self._providers]

    def provider_for(self, service: AssignedService) -> ExecutionProvider:
        p = self._providers.get(service)
        if p is None:
            svc = getattr(service, "value", service)
            raise NotRegisteredError(
                f"dispatcher: no provider registered for service {svc} (tier unsupported in this deployment)",
                service=service,
                operation="provider_for",
            )
        return p

    def submit_job(
        self, service: AssignedService, config: JobConfig, *, timeout: Optional[float] = None
    ) -> JobResult:
        p = self.provider_for(service)
        _log.info("Dispatcher: routing job %s to %s", config.job_id, service.value)
        return p.submit_job(config, timeout=timeout)

    def get_job_status(
        self, service: AssignedService, cloud_resource_path: str, *, timeout: Optional[float] = None
    ) -> JobStatus:
        return self.provider_for(service).get_job_status(cloud_resource_path, timeout=timeout)

    def cancel_job(
        self, service: AssignedService, cloud_resource_path: str, *, timeout: Optional[float] = None
    ) -> None:
        self.provider_for(service).cancel_job(cloud_resource_path, timeout=timeout)

    def list_jobs(self, service: AssignedService, *, timeout: Optional[float] = None) -> List[str]:
        return self.provider_for(service).list_jobs(timeout=timeout)
