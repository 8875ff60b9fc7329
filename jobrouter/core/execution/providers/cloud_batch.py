from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exceptions
from google.cloud import batch_v1

from ..errors import ConfigurationError
from ..models import JobConfig, JobResult, JobStatus, ProviderConfig
from ..status import is_terminal
from .base import (
    DEFAULT_RESOURCE_PREFIX,
    ExecutionProvider,
    enum_name,
    owned,
    resource_id,
    translate_backend_error,
)

_log = logging.getLogger("jobrouter.providers.cloud_batch")

SERVICE_TYPE = "cloud_batch"

_STATE_MAP = {
    "QUEUED": JobStatus.PENDING,
    "SCHEDULED": JobStatus.PENDING,
    "RUNNING": JobStatus.RUNNING,
    "CANCELLATION_IN_PROGRESS": JobStatus.RUNNING,
    "SUCCEEDED": JobStatus.COMPLETED,
    "FAILED": JobStatus.FAILED,
    "CANCELLED": JobStatus.CANCELLED,
    "DELETION_IN_PROGRESS": JobStatus.CANCELLED,
}


def _default_client():
    try:
        return batch_v1.BatchServiceClient()
    except auth_exceptions.DefaultCredentialsError as e:
        raise ConfigurationError(
            "failed to create Cloud Batch client", operation="configure", cause=e
        ) from e


def map_batch_status(job: Any) -> JobStatus:
    """Cloud Batch job -> JobStatus, from ``job.status.state``."""
    if job is None:
        return JobStatus.UNKNOWN
    state = enum_name(getattr(getattr(job, "status", None), "state", None))
    return _STATE_MAP.get(state, JobStatus.UNKNOWN)


class CloudBatchProvider(ExecutionProvider):
    """Heavy tier: Cloud Batch.

    One ``create_job`` call carries the whole definition: container runnable,
    compute resource, max run duration, retry policy, environment, service
    account and an optional ``machine_type`` provider option.
    """

    def __init__(self, config: ProviderConfig, *, client: Any = None):
        if not config.project_id.strip():
            raise ConfigurationError("project_id is required for Cloud Batch provider", operation="configure")
        if not config.region.strip():
            raise ConfigurationError("region is required for Cloud Batch provider", operation="configure")

        self.project_id = config.project_id.strip()
        self.region = config.region.strip()
        self.prefix = config.option("resource_prefix", DEFAULT_RESOURCE_PREFIX)
        self.default_machine_type = config.option("machine_type")
        self._client = client if client is not None else _default_client()

    def service_type(self) -> str:
        return SERVICE_TYPE

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}/locations/{self.region}"

    def build_job(self, config: JobConfig) -> Dict[str, Any]:
        container: Dict[str, Any] = {"image_uri": config.image_uri}
        if config.commands:
            container["commands"] = list(config.commands)
        if config.container_entrypoint:
            container["entrypoint"] = config.container_entrypoint

        task_spec: Dict[str, Any] = {"runnables": [{"container": container}]}

        res = config.resources
        if res is not None:
            compute: Dict[str, int] = {}
            if res.cpu_millis > 0:
                compute["cpu_milli"] = res.cpu_millis
            if res.memory_mib > 0:
                compute["memory_mib"] = res.memory_mib
            if compute:
                task_spec["compute_resource"] = compute
            if res.max_run_duration_seconds > 0:
                task_spec["max_run_duration"] = datetime.timedelta(seconds=res.max_run_duration_seconds)

        if config.max_retry_count > 0:
            task_spec["max_retry_count"] = config.max_retry_count
        if config.env_vars:
            task_spec["environment"] = {"variables": dict(config.env_vars)}

        task_group: Dict[str, Any] = {"task_spec": task_spec}
        if config.task_group is not None:
            task_group["task_count"] = config.task_group.task_count
            task_group["parallelism"] = config.task_group.parallelism

        allocation: Dict[str, Any] = {}
        if config.service_account:
            allocation["service_account"] = {"email": config.service_account}
        machine_type = (config.provider_options.get("machine_type") or self.default_machine_type).strip()
        if machine_type:
            allocation["instances"] = [{"policy": {"machine_type": machine_type}}]

        job: Dict[str, Any] = {
            "task_groups": [task_group],
            "logs_policy": {"destination": batch_v1.LogsPolicy.Destination.CLOUD_LOGGING},
        }
        if allocation:
            job["allocation_policy"] = allocation
        labels = config.labels()
        if labels:
            job["labels"] = labels
        return job

    def submit_job(self, config: JobConfig, *, timeout: Optional[float] = None) -> JobResult:
        job_id = resource_id(config.job_id, self.prefix)
        try:
            job = self._client.create_job(
                request={"parent": self.parent, "job_id": job_id, "job": self.build_job(config)},
                timeout=timeout,
            )
        except Exception as e:
            raise translate_backend_error(e, operation="submit_job", step="create_job") from e

        name = getattr(job, "name", "") or f"{self.parent}/jobs/{job_id}"
        _log.info("Cloud Batch job created: %s job_id=%s", name, config.job_id)

        initial = map_batch_status(job)
        if initial == JobStatus.UNKNOWN:
            initial = JobStatus.PENDING
        return JobResult(cloud_resource_path=name, initial_status=initial)

    def _get(self, resource_path: str, *, operation: str, timeout: Optional[float]) -> Any:
        try:
            return self._client.get_job(request={"name": resource_path}, timeout=timeout)
        except Exception as e:
            raise translate_backend_error(e, operation=operation, resource_path=resource_path) from e

    def get_job_status(self, resource_path: str, *, timeout: Optional[float] = None) -> JobStatus:
        return map_batch_status(self._get(resource_path, operation="get_job_status", timeout=timeout))

    def cancel_job(self, resource_path: str, *, timeout: Optional[float] = None) -> None:
        current = map_batch_status(self._get(resource_path, operation="cancel_job", timeout=timeout))
        if is_terminal(current):
            _log.info("Cloud Batch job already %s, cancel is a no-op: %s", current.value, resource_path)
            return

        try:
            op = self._client.cancel_job(request={"name": resource_path}, timeout=timeout)
            op.result(timeout=timeout)
        except gexc.FailedPrecondition:
            _log.info("Cloud Batch job finished before cancel: %s", resource_path)
            return
        except Exception as e:
            raise translate_backend_error(e, operation="cancel_job", resource_path=resource_path) from e

        _log.info("Cloud Batch job cancelled: %s", resource_path)

    def list_jobs(self, *, timeout: Optional[float] = None) -> List[str]:
        names: List[str] = []
        try:
            for job in self._client.list_jobs(request={"parent": self.parent}, timeout=timeout):
                name = getattr(job, "name", "")
                if name and owned(name, self.prefix):
                    names.append(name)
        except Exception as e:
            raise translate_backend_error(e, operation="list_jobs", resource_path=self.parent) from e
        return names
