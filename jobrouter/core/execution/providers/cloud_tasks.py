from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gexc
from google.auth import exceptions as auth_exceptions
from google.cloud import tasks_v2

from ..errors import ConfigurationError
from ..models import JobConfig, JobResult, JobStatus, ProviderConfig
from .base import DEFAULT_RESOURCE_PREFIX, ExecutionProvider, owned, resource_id, translate_backend_error

_log = logging.getLogger("jobrouter.providers.cloud_tasks")

SERVICE_TYPE = "cloud_tasks"
DEFAULT_QUEUE_ID = "jobrouter-simple"

# Cloud Tasks HTTP targets accept a dispatch deadline between 15s and 30m.
_MIN_DISPATCH_DEADLINE_S = 15
_MAX_DISPATCH_DEADLINE_S = 1800


def _default_client():
    try:
        return tasks_v2.CloudTasksClient()
    except auth_exceptions.DefaultCredentialsError as e:
        raise ConfigurationError(
            "failed to create Cloud Tasks client", operation="configure", cause=e
        ) from e


def _is_success_code(code: Any) -> bool:
    # gRPC OK or an HTTP 2xx from the target
    try:
        c = int(code)
    except (TypeError, ValueError):
        return False
    return c == 0 or 200 <= c < 300


def map_task_status(task: Any) -> JobStatus:
    """Cloud Tasks task -> JobStatus.

    - no attempt yet                  -> PENDING
    - dispatched, no response yet     -> RUNNING
    - response 2xx                    -> COMPLETED
    - any other response code         -> FAILED
    """
    if task is None:
        return JobStatus.UNKNOWN

    attempt = getattr(task, "last_attempt", None)
    if not attempt:
        if int(getattr(task, "dispatch_count", 0) or 0) > 0:
            return JobStatus.RUNNING
        return JobStatus.PENDING

    if getattr(attempt, "response_time", None) is None:
        return JobStatus.RUNNING

    status = getattr(attempt, "response_status", None)
    if _is_success_code(getattr(status, "code", None)):
        return JobStatus.COMPLETED
    return JobStatus.FAILED


class CloudTasksProvider(ExecutionProvider):
    """Cheap tier: one HTTP Target task per job.

    The task POSTs the job as JSON to ``target_url`` (a Cloud Run service that
    does the work). The task name is derived from the job id, so a duplicate
    submission is rejected by the queue.

    Options: ``target_url`` (required), ``queue_id`` (default jobrouter-simple),
    ``resource_prefix``.
    """

    def __init__(self, config: ProviderConfig, *, client: Any = None):
        if not config.project_id.strip():
            raise ConfigurationError("project_id is required for Cloud Tasks provider", operation="configure")
        if not config.region.strip():
            raise ConfigurationError("region is required for Cloud Tasks provider", operation="configure")

        target_url = config.option("target_url")
        if not target_url:
            raise ConfigurationError(
                "target_url is required in provider_options for Cloud Tasks provider", operation="configure"
            )

        self.project_id = config.project_id.strip()
        self.region = config.region.strip()
        self.queue_id = config.option("queue_id", DEFAULT_QUEUE_ID)
        self.target_url = target_url
        self.prefix = config.option("resource_prefix", DEFAULT_RESOURCE_PREFIX)
        self._client = client if client is not None else _default_client()

    def service_type(self) -> str:
        return SERVICE_TYPE

    @property
    def queue_path(self) -> str:
        return f"projects/{self.project_id}/locations/{self.region}/queues/{self.queue_id}"

    def _payload(self, config: JobConfig) -> bytes:
        body: Dict[str, Any] = {"job_id": config.job_id, "image_uri": config.image_uri}
        if config.commands:
            body["commands"] = list(config.commands)
        if config.env_vars:
            body["env_vars"] = dict(config.env_vars)
        return json.dumps(body, sort_keys=True).encode("utf-8")

    def build_request(self, config: JobConfig) -> Dict[str, Any]:
        task_name = f"{self.queue_path}/tasks/{resource_id(config.job_id, self.prefix, max_len=500)}"
        http_request: Dict[str, Any] = {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": self.target_url,
            "headers": {"Content-Type": "application/json"},
            "body": self._payload(config),
        }
        if config.service_account:
            http_request["oidc_token"] = {"service_account_email": config.service_account}

        task: Dict[str, Any] = {"name": task_name, "http_request": http_request}

        duration = config.resources.max_run_duration_seconds if config.resources else 0
        if duration > 0:
            seconds = max(_MIN_DISPATCH_DEADLINE_S, min(_MAX_DISPATCH_DEADLINE_S, duration))
            task["dispatch_deadline"] = datetime.timedelta(seconds=seconds)

        return {"parent": self.queue_path, "task": task}

    def submit_job(self, config: JobConfig, *, timeout: Optional[float] = None) -> JobResult:
        request = self.build_request(config)
        try:
            task = self._client.create_task(request=request, timeout=timeout)
        except Exception as e:
            raise translate_backend_error(
                e, operation="submit_job", step="create_task", resource_path=request["task"]["name"]
            ) from e

        name = getattr(task, "name", "") or request["task"]["name"]
        _log.info("Cloud Tasks task created: %s job_id=%s", name, config.job_id)
        return JobResult(cloud_resource_path=name, initial_status=JobStatus.PENDING)

    def get_job_status(self, resource_path: str, *, timeout: Optional[float] = None) -> JobStatus:
        try:
            task = self._client.get_task(request={"name": resource_path}, timeout=timeout)
        except Exception as e:
            raise translate_backend_error(e, operation="get_job_status", resource_path=resource_path) from e
        return map_task_status(task)

    def cancel_job(self, resource_path: str, *, timeout: Optional[float] = None) -> None:
        # Deleting a task before dispatch prevents it from running. Once dispatched
        # (or finished) the task is gone from the queue and there is nothing to stop.
        try:
            self._client.delete_task(request={"name": resource_path}, timeout=timeout)
        except gexc.NotFound:
            _log.info("Cloud Tasks task already dispatched or removed, cancel is a no-op: %s", resource_path)
            return
        except Exception as e:
            raise translate_backend_error(e, operation="cancel_job", resource_path=resource_path) from e

        _log.info("Cloud Tasks task deleted (cancelled): %s", resource_path)

    def list_jobs(self, *, timeout: Optional[float] = None) -> List[str]:
        names: List[str] = []
        try:
            for task in self._client.list_tasks(request={"parent": self.queue_path}, timeout=timeout):
                name = getattr(task, "name", "")
                if name and owned(name, self.prefix):
                    names.append(name)
        except Exception as e:
            raise translate_backend_error(e, operation="list_jobs", resource_path=self.queue_path) from e
        return names
