"""Explicit assembly of providers and the dispatcher from Settings.

Each configured tier is constructed here by name; there is no import-time
self-registration. ``clients`` lets callers (tests, custom transports) hand
in pre-built backend clients per tier.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from ..config import Settings
from .dispatcher import Dispatcher
from .models import AssignedService, ProviderConfig
from .providers import CloudBatchProvider, CloudRunJobsProvider, CloudTasksProvider, ExecutionProvider

_log = logging.getLogger("jobrouter.wiring")


def build_provider(
    service: AssignedService,
    config: ProviderConfig,
    *,
    clients: Optional[Mapping[str, Any]] = None,
) -> ExecutionProvider:
    c = dict(clients or {})
    if service == AssignedService.CLOUD_TASKS:
        return CloudTasksProvider(config, client=c.get("client"))
    if service == AssignedService.CLOUD_RUN_JOB:
        return CloudRunJobsProvider(
            config,
            jobs_client=c.get("jobs_client"),
            executions_client=c.get("executions_client"),
        )
    if service == AssignedService.CLOUD_BATCH:
        return CloudBatchProvider(config, client=c.get("client"))
    raise ValueError(f"Unsupported service: {service}")


def build_providers(
    settings: Settings,
    *,
    clients: Optional[Mapping[AssignedService, Mapping[str, Any]]] = None,
) -> Dict[AssignedService, ExecutionProvider]:
    out: Dict[AssignedService, ExecutionProvider] = {}
    for service, config in settings.providers.items():
        out[service] = build_provider(service, config, clients=(clients or {}).get(service))
        _log.info("built %s provider project=%s region=%s", service.value, config.project_id, config.region)
    return out


def build_dispatcher(
    settings: Settings,
    *,
    clients: Optional[Mapping[AssignedService, Mapping[str, Any]]] = None,
) -> Dispatcher:
    providers = build_providers(settings, clients=clients)
    return Dispatcher(
        cloud_tasks=providers.get(AssignedService.CLOUD_TASKS),
        cloud_run_jobs=providers.get(AssignedService.CLOUD_RUN_JOB),
        cloud_batch=providers.get(AssignedService.CLOUD_BATCH),
    )
