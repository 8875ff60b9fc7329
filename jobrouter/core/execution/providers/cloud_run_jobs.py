from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional

from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exceptions
from google.cloud import run_v2

from ..errors import ConfigurationError
from ..models import JobConfig, JobResult, JobStatus, ProviderConfig
from ..status import is_terminal, resolve
from .base import (
    DEFAULT_RESOURCE_PREFIX,
    ExecutionProvider,
    enum_name,
    owned,
    resource_id,
    translate_backend_error,
)

_log = logging.getLogger("jobrouter.providers.cloud_run_jobs")

SERVICE_TYPE = "cloud_run_jobs"

# Execution condition types that end an execution, when in CONDITION_SUCCEEDED.
_TERMINAL_CONDITIONS = {
    "Completed": JobStatus.COMPLETED,
    "Failed": JobStatus.FAILED,
    "Cancelled": JobStatus.CANCELLED,
}


def _default_clients():
    try:
        return run_v2.JobsClient(), run_v2.ExecutionsClient()
    except auth_exceptions.DefaultCredentialsError as e:
        raise ConfigurationError(
            "failed to create Cloud Run clients", operation="configure", cause=e
        ) from e


def _count(obj: Any, name: str) -> int:
    return int(getattr(obj, name, 0) or 0)


def map_execution_status(execution: Any) -> JobStatus:
    """Cloud Run execution -> JobStatus.

    Terminal conditions are read first and resolved by precedence
    (FAILED > CANCELLED > COMPLETED). A ``Completed`` condition that itself
    failed counts as FAILED. Without a terminal condition the task counters
    decide: any running task -> RUNNING, no task started yet -> PENDING.
    Any other combination is UNKNOWN.
    """
    if execution is None:
        return JobStatus.UNKNOWN

    signals: List[JobStatus] = []
    for cond in getattr(execution, "conditions", None) or []:
        ctype = getattr(cond, "type_", None) or getattr(cond, "type", "")
        state = enum_name(getattr(cond, "state", None))
        if state == "CONDITION_SUCCEEDED" and ctype in _TERMINAL_CONDITIONS:
            signals.append(_TERMINAL_CONDITIONS[ctype])
        elif state == "CONDITION_FAILED" and ctype == "Completed":
            signals.append(JobStatus.FAILED)

    if signals:
        return resolve(signals)

    running = _count(execution, "running_count")
    if running > 0:
        return JobStatus.RUNNING

    if running == 0 and _count(execution, "succeeded_count") == 0 and _count(execution, "failed_count") == 0:
        return JobStatus.PENDING

    return JobStatus.UNKNOWN


def _latest(executions: Iterable[Any]) -> Optional[Any]:
    items = list(executions)
    if not items:
        return None
    if all(getattr(e, "create_time", None) is not None for e in items):
        return max(items, key=lambda e: e.create_time)
    # API order is newest first
    return items[0]


class CloudRunJobsProvider(ExecutionProvider):
    """Medium tier: Cloud Run Jobs.

    Submission is two steps. ``create_job`` defines the job (container,
    resources, env, retries) and ``run_job`` starts an execution. The job
    resource name is the durable handle; status and cancel work on its latest
    execution.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        jobs_client: Any = None,
        executions_client: Any = None,
    ):
        if not config.project_id.strip():
            raise ConfigurationError("project_id is required for Cloud Run Jobs provider", operation="configure")
        if not config.region.strip():
            raise ConfigurationError("region is required for Cloud Run Jobs provider", operation="configure")

        self.project_id = config.project_id.strip()
        self.region = config.region.strip()
        self.prefix = config.option("resource_prefix", DEFAULT_RESOURCE_PREFIX)

        if jobs_client is None or executions_client is None:
            default_jobs, default_execs = _default_clients()
            jobs_client = jobs_client or default_jobs
            executions_client = executions_client or default_execs
        self._jobs = jobs_client
        self._executions = executions_client

    def service_type(self) -> str:
        return SERVICE_TYPE

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}/locations/{self.region}"

    def build_job(self, config: JobConfig) -> Dict[str, Any]:
        container: Dict[str, Any] = {"image": config.image_uri}
        if config.container_entrypoint:
            container["command"] = [config.container_entrypoint]
            if config.commands:
                container["args"] = list(config.commands)
        elif config.commands:
            container["command"] = list(config.commands)

        if config.env_vars:
            container["env"] = [{"name": k, "value": v} for k, v in sorted(config.env_vars.items())]

        limits: Dict[str, str] = {}
        res = config.resources
        if res is not None:
            if res.cpu_millis > 0:
                limits["cpu"] = f"{res.cpu_millis}m"
            if res.memory_mib > 0:
                limits["memory"] = f"{res.memory_mib}Mi"
        container["resources"] = {"limits": limits}

        task_template: Dict[str, Any] = {"containers": [container]}
        if res is not None and res.max_run_duration_seconds > 0:
            task_template["timeout"] = datetime.timedelta(seconds=res.max_run_duration_seconds)
        if config.max_retry_count > 0:
            task_template["max_retries"] = config.max_retry_count
        if config.service_account:
            task_template["service_account"] = config.service_account

        execution_template: Dict[str, Any] = {"template": task_template}
        if config.task_group is not None:
            execution_template["task_count"] = config.task_group.task_count
            execution_template["parallelism"] = config.task_group.parallelism

        job: Dict[str, Any] = {"template": execution_template}
        labels = config.labels()
        if labels:
            job["labels"] = labels
        return job

    def submit_job(self, config: JobConfig, *, timeout: Optional[float] = None) -> JobResult:
        job_id = resource_id(config.job_id, self.prefix)
        expected_name = f"{self.parent}/jobs/{job_id}"

        # Step 1: define the job.
        try:
            create_op = self._jobs.create_job(
                request={"parent": self.parent, "job_id": job_id, "job": self.build_job(config)},
                timeout=timeout,
            )
        except Exception as e:
            raise translate_backend_error(e, operation="submit_job", step="create_job") from e

        try:
            job = create_op.result(timeout=timeout)
        except Exception as e:
            # the job may exist even though we could not confirm it
            raise translate_backend_error(
                e, operation="submit_job", step="wait_create_job", resource_path=expected_name
            ) from e

        job_name = getattr(job, "name", "") or expected_name
        _log.info("Cloud Run job created: %s job_id=%s", job_name, config.job_id)

        # Step 2: start an execution.
        try:
            run_op = self._jobs.run_job(request={"name": job_name}, timeout=timeout)
        except Exception as e:
            _log.error("Cloud Run job created but failed to start: %s err=%s", job_name, e)
            raise translate_backend_error(e, operation="submit_job", step="run_job", resource_path=job_name) from e

        execution = getattr(run_op, "metadata", None)
        if execution is not None:
            _log.info("Cloud Run job execution started: %s", getattr(execution, "name", "") or job_name)
        else:
            _log.warning("Cloud Run execution metadata unavailable for %s", job_name)

        return JobResult(cloud_resource_path=job_name, initial_status=JobStatus.RUNNING)

    def _list_executions(self, resource_path: str, *, operation: str, timeout: Optional[float]) -> List[Any]:
        try:
            return list(self._executions.list_executions(request={"parent": resource_path}, timeout=timeout))
        except Exception as e:
            raise translate_backend_error(e, operation=operation, resource_path=resource_path) from e

    def get_job_status(self, resource_path: str, *, timeout: Optional[float] = None) -> JobStatus:
        execution = _latest(self._list_executions(resource_path, operation="get_job_status", timeout=timeout))
        if execution is None:
            # defined but never executed
            return JobStatus.PENDING
        return map_execution_status(execution)

    def cancel_job(self, resource_path: str, *, timeout: Optional[float] = None) -> None:
        execution = _latest(self._list_executions(resource_path, operation="cancel_job", timeout=timeout))
        if execution is None:
            _log.info("Cloud Run job has no execution, cancel is a no-op: %s", resource_path)
            return

        current = map_execution_status(execution)
        if is_terminal(current):
            _log.info("Cloud Run execution already %s, cancel is a no-op: %s", current.value, execution.name)
            return

        try:
            op = self._executions.cancel_execution(request={"name": execution.name}, timeout=timeout)
            op.result(timeout=timeout)
        except gexc.FailedPrecondition:
            # finished between the read and the cancel
            _log.info("Cloud Run execution finished before cancel: %s", execution.name)
            return
        except Exception as e:
            raise translate_backend_error(e, operation="cancel_job", resource_path=execution.name) from e

        _log.info("Cloud Run execution cancelled: %s", execution.name)

    def list_jobs(self, *, timeout: Optional[float] = None) -> List[str]:
        names: List[str] = []
        try:
            for job in self._jobs.list_jobs(request={"parent": self.parent}, timeout=timeout):
                name = getattr(job, "name", "")
                if name and owned(name, self.prefix):
                    names.append(name)
        except Exception as e:
            raise translate_backend_error(e, operation="list_jobs", resource_path=self.parent) from e
        return names
