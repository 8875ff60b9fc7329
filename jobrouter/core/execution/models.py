from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class JobStatus(str, Enum):
    UNKNOWN = "UNKNOWN"
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class AssignedService(str, Enum):
    """Execution tier chosen by the router."""

    CLOUD_TASKS = "CLOUD_TASKS"  # cheap / simple
    CLOUD_RUN_JOB = "CLOUD_RUN_JOB"  # medium
    CLOUD_BATCH = "CLOUD_BATCH"  # heavy / complex


class Resources(BaseModel):
    # 0 means "use provider default"
    model_config = ConfigDict(frozen=True)

    cpu_millis: int = Field(default=0, ge=0)
    memory_mib: int = Field(default=0, ge=0)
    max_run_duration_seconds: int = Field(default=0, ge=0)


class TaskGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_count: int = Field(default=1, ge=1)
    parallelism: int = Field(default=1, ge=1)


class JobConfig(BaseModel):
    """Immutable submission request.

    Built once per submission. ``job_id`` doubles as the idempotency key:
    backends reject a second resource with the same derived name.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(min_length=1)
    image_uri: str = Field(min_length=1)
    commands: List[str] = Field(default_factory=list)
    container_entrypoint: Optional[str] = None
    env_vars: Dict[str, str] = Field(default_factory=dict)
    resources: Optional[Resources] = None
    task_group: Optional[TaskGroup] = None
    max_retry_count: int = Field(default=0, ge=0)
    service_account: Optional[str] = None
    provider_options: Dict[str, str] = Field(default_factory=dict)

    @field_validator("job_id", "image_uri")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    def labels(self) -> Dict[str, str]:
        """Resource labels declared via ``provider_options["labels.<key>"]``."""
        out: Dict[str, str] = {}
        for k, v in sorted(self.provider_options.items()):
            if k.startswith("labels.") and len(k) > len("labels."):
                out[k[len("labels."):]] = v
        return out


class JobResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    # opaque outside the provider that produced it
    cloud_resource_path: str = Field(min_length=1)
    initial_status: JobStatus = JobStatus.PENDING


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str = ""
    region: str = ""
    provider_options: Dict[str, str] = Field(default_factory=dict)

    def option(self, key: str, default: str = "") -> str:
        return (self.provider_options.get(key) or default).strip()


@dataclass
class JobEvent:
    ts: str
    status: JobStatus
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class JobRecord:
    job_id: str
    assigned_service: AssignedService
    cloud_resource_path: str
    status: JobStatus
    created_ts: str
    updated_ts: str

    service_type: Optional[str] = None
    image_uri: Optional[str] = None
    finished_ts: Optional[str] = None
    last_error: Optional[str] = None
    events: List[JobEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "assigned_service": self.assigned_service.value,
            "cloud_resource_path": self.cloud_resource_path,
            "status": self.status.value,
            "created_ts": self.created_ts,
            "updated_ts": self.updated_ts,
            "service_type": self.service_type,
            "image_uri": self.image_uri,
            "finished_ts": self.finished_ts,
            "last_error": self.last_error,
            "events": [
                {
                    "ts": e.ts,
                    "status": e.status.value,
                    "message": e.message,
                    "data": e.data,
                }
                for e in self.events
            ],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "JobRecord":
        evs: List[JobEvent] = []
        for e in d.get("events", []) or []:
            evs.append(
                JobEvent(
                    ts=e["ts"],
                    status=JobStatus(e["status"]),
                    message=e.get("message", ""),
                    data=e.get("data", {}) or {},
                )
            )

        return JobRecord(
            job_id=d["job_id"],
            assigned_service=AssignedService(d["assigned_service"]),
            cloud_resource_path=d["cloud_resource_path"],
            status=JobStatus(d.get("status") or JobStatus.UNKNOWN.value),
            created_ts=d.get("created_ts") or _utc_now_iso(),
            updated_ts=d.get("updated_ts") or _utc_now_iso(),
            service_type=d.get("service_type"),
            image_uri=d.get("image_uri"),
            finished_ts=d.get("finished_ts"),
            last_error=d.get("last_error"),
            events=evs,
        )
