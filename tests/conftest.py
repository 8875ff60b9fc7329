from __future__ import annotations

import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from google.api_core import exceptions as gexc

from jobrouter.core.execution.models import JobConfig, JobResult, JobStatus, ProviderConfig, Resources
from jobrouter.core.execution.providers.base import ExecutionProvider
from jobrouter.core.execution.status import is_terminal
from jobrouter.core.observability.metrics import reset_metrics

PROJECT = "proj-1"
REGION = "us-central1"
PARENT = f"projects/{PROJECT}/locations/{REGION}"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # tests never see the developer's deployment settings
    for k in list(os.environ):
        if k.startswith("JOBROUTER_"):
            monkeypatch.delenv(k, raising=False)
    reset_metrics()


class FakeOperation:
    """Long-running operation stand-in: ``result()`` returns or raises."""

    def __init__(self, value: Any = None, *, error: Optional[BaseException] = None, metadata: Any = None):
        self.value = value
        self.error = error
        self.metadata = metadata
        self.result_calls: List[Optional[float]] = []

    def result(self, timeout: Optional[float] = None):
        self.result_calls.append(timeout)
        if self.error is not None:
            raise self.error
        return self.value


class _FakeClient:
    """Records (method, request, timeout); ``fail[method]`` raises instead of answering."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail: Dict[str, BaseException] = {}

    def _record(self, method: str, request: Dict[str, Any], timeout: Optional[float]) -> None:
        self.calls.append((method, request, timeout))
        err = self.fail.get(method)
        if err is not None:
            raise err

    def requests(self, method: str) -> List[Dict[str, Any]]:
        return [req for m, req, _ in self.calls if m == method]


class FakeTasksClient(_FakeClient):
    def __init__(self):
        super().__init__()
        self.tasks: Dict[str, Any] = {}

    def create_task(self, *, request, timeout=None):
        self._record("create_task", request, timeout)
        name = request["task"]["name"]
        if name in self.tasks:
            raise gexc.AlreadyExists(f"task {name} already exists")
        task = SimpleNamespace(name=name, dispatch_count=0, last_attempt=None)
        self.tasks[name] = task
        return task

    def get_task(self, *, request, timeout=None):
        self._record("get_task", request, timeout)
        try:
            return self.tasks[request["name"]]
        except KeyError:
            raise gexc.NotFound(f"task {request['name']} not found")

    def delete_task(self, *, request, timeout=None):
        self._record("delete_task", request, timeout)
        if self.tasks.pop(request["name"], None) is None:
            raise gexc.NotFound(f"task {request['name']} not found")

    def list_tasks(self, *, request, timeout=None):
        self._record("list_tasks", request, timeout)
        return list(self.tasks.values())


class FakeRunJobsClient(_FakeClient):
    def __init__(self, executions: "FakeExecutionsClient"):
        super().__init__()
        self.jobs: Dict[str, Any] = {}
        self.executions = executions

    def create_job(self, *, request, timeout=None):
        self._record("create_job", request, timeout)
        name = f"{request['parent']}/jobs/{request['job_id']}"
        if name in self.jobs:
            raise gexc.AlreadyExists(f"job {name} already exists")
        job = SimpleNamespace(name=name, **request["job"])
        self.jobs[name] = job
        self.executions.by_job.setdefault(name, [])
        return FakeOperation(job)

    def run_job(self, *, request, timeout=None):
        self._record("run_job", request, timeout)
        name = request["name"]
        execution = SimpleNamespace(
            name=f"{name}/executions/{name.rsplit('/', 1)[-1]}-x{len(self.executions.by_job[name]) + 1}",
            conditions=[],
            running_count=1,
            succeeded_count=0,
            failed_count=0,
            create_time=None,
        )
        self.executions.by_job[name].insert(0, execution)
        return FakeOperation(execution, metadata=execution)

    def list_jobs(self, *, request, timeout=None):
        self._record("list_jobs", request, timeout)
        return list(self.jobs.values())


class FakeExecutionsClient(_FakeClient):
    def __init__(self):
        super().__init__()
        # job name -> executions, newest first
        self.by_job: Dict[str, List[Any]] = {}
        self.cancel_error: Optional[BaseException] = None

    def list_executions(self, *, request, timeout=None):
        self._record("list_executions", request, timeout)
        parent = request["parent"]
        if parent not in self.by_job:
            raise gexc.NotFound(f"job {parent} not found")
        return list(self.by_job[parent])

    def cancel_execution(self, *, request, timeout=None):
        self._record("cancel_execution", request, timeout)
        for executions in self.by_job.values():
            for e in executions:
                if e.name == request["name"]:
                    e.running_count = 0
                    e.conditions = [condition("Cancelled")]
        return FakeOperation(None, error=self.cancel_error)


class FakeBatchClient(_FakeClient):
    def __init__(self):
        super().__init__()
        self.jobs: Dict[str, Any] = {}
        self.cancel_error: Optional[BaseException] = None

    def create_job(self, *, request, timeout=None):
        self._record("create_job", request, timeout)
        name = f"{request['parent']}/jobs/{request['job_id']}"
        if name in self.jobs:
            raise gexc.AlreadyExists(f"job {name} already exists")
        job = SimpleNamespace(name=name, status=SimpleNamespace(state="QUEUED"))
        self.jobs[name] = job
        return job

    def get_job(self, *, request, timeout=None):
        self._record("get_job", request, timeout)
        try:
            return self.jobs[request["name"]]
        except KeyError:
            raise gexc.NotFound(f"job {request['name']} not found")

    def cancel_job(self, *, request, timeout=None):
        self._record("cancel_job", request, timeout)
        self.jobs[request["name"]].status.state = "CANCELLED"
        return FakeOperation(None, error=self.cancel_error)

    def list_jobs(self, *, request, timeout=None):
        self._record("list_jobs", request, timeout)
        return list(self.jobs.values())


def condition(type_: str, state: str = "CONDITION_SUCCEEDED"):
    return SimpleNamespace(type_=type_, state=state)


def provider_config(**options: str) -> ProviderConfig:
    return ProviderConfig(project_id=PROJECT, region=REGION, provider_options=options)


def job_config(job_id: str = "job-1", *, cpu: int = 0, mem: int = 0, duration: int = 0, **kw: Any) -> JobConfig:
    return JobConfig(
        job_id=job_id,
        image_uri=kw.pop("image_uri", "gcr.io/proj-1/worker:latest"),
        resources=Resources(cpu_millis=cpu, memory_mib=mem, max_run_duration_seconds=duration),
        **kw,
    )


class InMemoryProvider(ExecutionProvider):
    """Backend double for dispatcher/service tests. ``statuses`` drives get_job_status."""

    def __init__(self, name: str):
        self.name = name
        self.statuses: Dict[str, JobStatus] = {}
        self.submitted: List[JobConfig] = []
        self.cancelled: List[str] = []
        self.timeouts: List[Optional[float]] = []
        self.submit_error: Optional[BaseException] = None
        self.cancel_error: Optional[BaseException] = None

    def service_type(self) -> str:
        return self.name

    def submit_job(self, config, *, timeout=None):
        self.timeouts.append(timeout)
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(config)
        path = f"{self.name}/jobs/{config.job_id}"
        self.statuses[path] = JobStatus.PENDING
        return JobResult(cloud_resource_path=path, initial_status=JobStatus.PENDING)

    def get_job_status(self, resource_path, *, timeout=None):
        self.timeouts.append(timeout)
        return self.statuses.get(resource_path, JobStatus.UNKNOWN)

    def cancel_job(self, resource_path, *, timeout=None):
        self.timeouts.append(timeout)
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(resource_path)
        if not is_terminal(self.statuses.get(resource_path, JobStatus.UNKNOWN)):
            self.statuses[resource_path] = JobStatus.CANCELLED

    def list_jobs(self, *, timeout=None):
        self.timeouts.append(timeout)
        return sorted(self.statuses)


@pytest.fixture()
def tasks_client() -> FakeTasksClient:
    return FakeTasksClient()


@pytest.fixture()
def executions_client() -> FakeExecutionsClient:
    return FakeExecutionsClient()


@pytest.fixture()
def run_jobs_client(executions_client) -> FakeRunJobsClient:
    return FakeRunJobsClient(executions_client)


@pytest.fixture()
def batch_client() -> FakeBatchClient:
    return FakeBatchClient()


@pytest.fixture()
def store_dir(tmp_path: Path) -> Path:
    d = tmp_path / "jobs"
    d.mkdir(parents=True, exist_ok=True)
    return d
