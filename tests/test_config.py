import json
from pathlib import Path

import pytest

from jobrouter.core.config import load_providers_file, load_settings
from jobrouter.core.execution.errors import ConfigurationError
from jobrouter.core.execution.models import AssignedService


def test_defaults_without_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    s = load_settings()
    assert s.providers == {}
    assert s.resource_prefix == "jobrouter-"
    assert s.operation_timeout_seconds == 60.0
    assert s.port == 8080
    assert s.store_dir == tmp_path / ".jobrouter" / "jobs"


def test_env_enables_tiers(monkeypatch):
    monkeypatch.setenv("JOBROUTER_GCP_PROJECT", "proj-1")
    monkeypatch.setenv("JOBROUTER_GCP_REGION", "europe-west1")
    monkeypatch.setenv("JOBROUTER_CLOUD_TASKS_TARGET_URL", "https://w/run")
    monkeypatch.setenv("JOBROUTER_CLOUD_TASKS_QUEUE_ID", "q1")
    monkeypatch.setenv("JOBROUTER_CLOUD_BATCH_ENABLED", "true")
    monkeypatch.setenv("JOBROUTER_OPERATION_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("JOBROUTER_LOG_LEVEL", "debug")

    s = load_settings()
    assert set(s.providers) == {AssignedService.CLOUD_TASKS, AssignedService.CLOUD_BATCH}
    tasks = s.providers[AssignedService.CLOUD_TASKS]
    assert tasks.project_id == "proj-1"
    assert tasks.region == "europe-west1"
    assert tasks.option("target_url") == "https://w/run"
    assert tasks.option("queue_id") == "q1"
    assert tasks.option("resource_prefix") == "jobrouter-"
    assert s.operation_timeout_seconds == 12.5
    assert s.log_level == "DEBUG"


def test_yaml_file_overrides_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("JOBROUTER_GCP_PROJECT", "env-proj")
    monkeypatch.setenv("JOBROUTER_GCP_REGION", "us-central1")
    monkeypatch.setenv("JOBROUTER_CLOUD_TASKS_TARGET_URL", "https://env/run")
    p = tmp_path / "providers.yaml"
    p.write_text(
        "cloud_tasks:\n"
        "  options:\n"
        "    target_url: https://file/run\n"
        "cloud_run_jobs:\n"
        "  project_id: file-proj\n"
        "  region: asia-east1\n",
        encoding="utf-8",
    )

    s = load_settings(providers_file=p)
    assert s.providers[AssignedService.CLOUD_TASKS].option("target_url") == "https://file/run"
    assert s.providers[AssignedService.CLOUD_TASKS].project_id == "env-proj"
    run = s.providers[AssignedService.CLOUD_RUN_JOB]
    assert (run.project_id, run.region) == ("file-proj", "asia-east1")


def test_json_file_via_env(tmp_path: Path, monkeypatch):
    p = tmp_path / "providers.json"
    p.write_text(json.dumps({"cloud_batch": {"project_id": "p", "region": "r", "options": {"machine_type": "e2"}}}))
    monkeypatch.setenv("JOBROUTER_PROVIDERS_FILE", str(p))

    s = load_settings()
    assert s.providers[AssignedService.CLOUD_BATCH].option("machine_type") == "e2"


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "cloud_functions:\n  region: r\n",
        "cloud_tasks: [1, 2]\n",
        "cloud_tasks:\n  options: nope\n",
        "cloud_tasks: {unterminated\n",
    ],
)
def test_malformed_file_raises(tmp_path: Path, content):
    p = tmp_path / "bad.yaml"
    p.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_providers_file(p)


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        load_settings(providers_file=tmp_path / "nope.yaml")


def test_bad_number_raises(monkeypatch):
    monkeypatch.setenv("JOBROUTER_PORT", "eighty")
    with pytest.raises(ConfigurationError):
        load_settings()
