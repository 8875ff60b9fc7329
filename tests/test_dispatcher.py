import pytest

from conftest import InMemoryProvider, job_config

from jobrouter.core.execution.dispatcher import Dispatcher
from jobrouter.core.execution.errors import ConfigurationError, NotRegisteredError
from jobrouter.core.execution.models import AssignedService, JobStatus


def test_zero_providers_is_configuration_error():
    with pytest.raises(ConfigurationError) as e:
        Dispatcher()
    assert "at least one provider" in str(e.value)


def test_registered_services_in_tier_order():
    d = Dispatcher(cloud_batch=InMemoryProvider("b"), cloud_tasks=InMemoryProvider("t"))
    assert d.registered_services() == [AssignedService.CLOUD_TASKS, AssignedService.CLOUD_BATCH]


def test_unregistered_tier_raises_for_every_operation():
    d = Dispatcher(cloud_tasks=InMemoryProvider("t"))
    calls = [
        lambda: d.submit_job(AssignedService.CLOUD_BATCH, job_config()),
        lambda: d.get_job_status(AssignedService.CLOUD_BATCH, "x"),
        lambda: d.cancel_job(AssignedService.CLOUD_BATCH, "x"),
        lambda: d.list_jobs(AssignedService.CLOUD_BATCH),
    ]
    for call in calls:
        with pytest.raises(NotRegisteredError) as e:
            call()
        assert e.value.service == AssignedService.CLOUD_BATCH
        assert "tier unsupported" in str(e.value)


def test_forwards_to_provider_with_timeout():
    tasks = InMemoryProvider("t")
    run = InMemoryProvider("r")
    d = Dispatcher(cloud_tasks=tasks, cloud_run_jobs=run)

    res = d.submit_job(AssignedService.CLOUD_RUN_JOB, job_config("a"), timeout=3.0)
    assert res.cloud_resource_path == "r/jobs/a"
    assert [c.job_id for c in run.submitted] == ["a"]
    assert tasks.submitted == []

    run.statuses["r/jobs/a"] = JobStatus.RUNNING
    assert d.get_job_status(AssignedService.CLOUD_RUN_JOB, "r/jobs/a", timeout=2.0) == JobStatus.RUNNING

    d.cancel_job(AssignedService.CLOUD_RUN_JOB, "r/jobs/a", timeout=1.0)
    assert run.cancelled == ["r/jobs/a"]

    assert d.list_jobs(AssignedService.CLOUD_RUN_JOB) == ["r/jobs/a"]
    assert run.timeouts == [3.0, 2.0, 1.0, None]


def test_errors_are_not_translated_or_retried():
    tasks = InMemoryProvider("t")
    boom = RuntimeError("boom")
    tasks.submit_error = boom
    d = Dispatcher(cloud_tasks=tasks)

    with pytest.raises(RuntimeError) as e:
        d.submit_job(AssignedService.CLOUD_TASKS, job_config())
    assert e.value is boom
    assert len(tasks.timeouts) == 1
