"""
Runtime configuration.

Environment variables, plus an optional YAML/JSON providers file that
describes which execution tiers this deployment offers.

Providers file format (YAML or JSON):
    cloud_tasks:
      project_id: my-project
      region: us-central1
      options:
        target_url: https://worker-xyz.a.run.app/run
        queue_id: jobrouter-simple
    cloud_run_jobs:
      region: us-central1
    cloud_batch:
      options:
        machine_type: e2-standard-8

Environment variables:
    JOBROUTER_PROVIDERS_FILE              path to the providers file (optional)
    JOBROUTER_GCP_PROJECT / _GCP_REGION   defaults for every provider section
    JOBROUTER_CLOUD_TASKS_TARGET_URL      enables the cheap tier without a file
    JOBROUTER_CLOUD_TASKS_QUEUE_ID
    JOBROUTER_CLOUD_RUN_JOBS_ENABLED      enables the medium tier without a file
    JOBROUTER_CLOUD_BATCH_ENABLED         enables the heavy tier without a file
    JOBROUTER_RESOURCE_PREFIX             default "jobrouter-"
    JOBROUTER_STORE_DIR                   default <cwd>/.jobrouter/jobs
    JOBROUTER_OPERATION_TIMEOUT_SECONDS   default 60
    JOBROUTER_HOST / JOBROUTER_PORT / JOBROUTER_LOG_LEVEL

Unlike optional tuning files, a providers file that is named but missing or
malformed is a ConfigurationError: a deployment must not silently lose a tier.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .execution.errors import ConfigurationError
from .execution.models import AssignedService, ProviderConfig
from .execution.providers.base import DEFAULT_RESOURCE_PREFIX

_log = logging.getLogger("jobrouter.config")

SECTION_SERVICES: Dict[str, AssignedService] = {
    "cloud_tasks": AssignedService.CLOUD_TASKS,
    "cloud_run_jobs": AssignedService.CLOUD_RUN_JOB,
    "cloud_batch": AssignedService.CLOUD_BATCH,
}

_TRUTHY = ("1", "true", "yes", "on")


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or "").strip()


def _env_flag(name: str) -> bool:
    return _env(name).lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    providers: Dict[AssignedService, ProviderConfig] = field(default_factory=dict)
    resource_prefix: str = DEFAULT_RESOURCE_PREFIX
    store_dir: Path = Path(".jobrouter") / "jobs"
    operation_timeout_seconds: float = 60.0
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"


def _parse_sections(raw: Any, source: str) -> Dict[str, Dict[str, Any]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"providers file {source} must be a mapping, got {type(raw).__name__}", operation="load_settings"
        )

    out: Dict[str, Dict[str, Any]] = {}
    for key, section in raw.items():
        name = str(key).strip().lower()
        if name not in SECTION_SERVICES:
            raise ConfigurationError(
                f"unknown provider section {key!r} in {source} (expected one of {sorted(SECTION_SERVICES)})",
                operation="load_settings",
            )
        section = section or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"provider section {key!r} in {source} must be a mapping", operation="load_settings")
        options = section.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigurationError(f"{key}.options in {source} must be a mapping", operation="load_settings")
        out[name] = {
            "project_id": str(section.get("project_id") or "").strip(),
            "region": str(section.get("region") or "").strip(),
            "options": {str(k): str(v) for k, v in options.items() if v is not None},
        }
    return out


def load_providers_file(path: Path) -> Dict[str, Dict[str, Any]]:
    """Load provider sections from a YAML or JSON file."""
    p = Path(path)
    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read providers file {p}", operation="load_settings", cause=exc) from exc

    # JSON first, then YAML (a superset for these flat documents)
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"failed to parse providers file {p} as JSON or YAML", operation="load_settings", cause=exc
            ) from exc

    sections = _parse_sections(data, str(p))
    _log.info("Loaded %d provider sections from %s", len(sections), p)
    return sections


def _env_sections() -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}

    target_url = _env("JOBROUTER_CLOUD_TASKS_TARGET_URL")
    if target_url:
        opts = {"target_url": target_url}
        queue_id = _env("JOBROUTER_CLOUD_TASKS_QUEUE_ID")
        if queue_id:
            opts["queue_id"] = queue_id
        out["cloud_tasks"] = {"project_id": "", "region": "", "options": opts}

    if _env_flag("JOBROUTER_CLOUD_RUN_JOBS_ENABLED"):
        out["cloud_run_jobs"] = {"project_id": "", "region": "", "options": {}}

    if _env_flag("JOBROUTER_CLOUD_BATCH_ENABLED"):
        out["cloud_batch"] = {"project_id": "", "region": "", "options": {}}

    return out


def _resolve_path(path: Optional[Path]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = _env("JOBROUTER_PROVIDERS_FILE")
    if env_path:
        return Path(env_path)
    return None


def load_settings(providers_file: Optional[Path] = None) -> Settings:
    """Build Settings from the environment and the optional providers file.

    Precedence for each provider section: file > env; project and region fall
    back to JOBROUTER_GCP_PROJECT / JOBROUTER_GCP_REGION.
    """
    sections = _env_sections()

    resolved = _resolve_path(providers_file)
    if resolved is not None:
        for name, sec in load_providers_file(resolved).items():
            base = sections.get(name) or {"project_id": "", "region": "", "options": {}}
            sections[name] = {
                "project_id": sec["project_id"] or base["project_id"],
                "region": sec["region"] or base["region"],
                "options": {**base["options"], **sec["options"]},
            }

    project = _env("JOBROUTER_GCP_PROJECT")
    region = _env("JOBROUTER_GCP_REGION")
    prefix = _env("JOBROUTER_RESOURCE_PREFIX", DEFAULT_RESOURCE_PREFIX) or DEFAULT_RESOURCE_PREFIX

    providers: Dict[AssignedService, ProviderConfig] = {}
    for name, sec in sorted(sections.items()):
        options = dict(sec["options"])
        options.setdefault("resource_prefix", prefix)
        providers[SECTION_SERVICES[name]] = ProviderConfig(
            project_id=sec["project_id"] or project,
            region=sec["region"] or region,
            provider_options=options,
        )

    try:
        timeout = float(_env("JOBROUTER_OPERATION_TIMEOUT_SECONDS", "60") or "60")
        port = int(_env("JOBROUTER_PORT", "8080") or "8080")
    except ValueError as exc:
        raise ConfigurationError("invalid numeric setting", operation="load_settings", cause=exc) from exc

    store_dir = _env("JOBROUTER_STORE_DIR")
    return Settings(
        providers=providers,
        resource_prefix=prefix,
        store_dir=Path(store_dir) if store_dir else Path.cwd() / ".jobrouter" / "jobs",
        operation_timeout_seconds=timeout,
        host=_env("JOBROUTER_HOST", "0.0.0.0") or "0.0.0.0",
        port=port,
        log_level=(_env("JOBROUTER_LOG_LEVEL", "INFO") or "INFO").upper(),
    )
