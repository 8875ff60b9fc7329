from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .errors import NotFoundError
from .models import JobEvent, JobRecord, JobStatus, _utc_now_iso

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


@runtime_checkable
class JobStore(Protocol):
    """Durable job_id -> resource path mapping.

    The record must be persisted before any status or cancel call so polling
    can resume after a restart.
    """

    def get(self, job_id: str) -> Optional[JobRecord]: ...

    def put(self, rec: JobRecord) -> None: ...

    def update(
        self,
        job_id: str,
        *,
        fields: Dict[str, Any],
        message: str = "",
        data: Optional[Dict[str, Any]] = None,
        emit_event: bool = False,
    ) -> JobRecord: ...

    def list_ids(self) -> List[str]: ...


class FileJobStore:
    """File-backed job store.

    Path: <root_dir>/{job_id}.json
    """

    def __init__(self, *, root_dir: Path):
        self.root_dir = Path(root_dir)

    def _path(self, job_id: str) -> Path:
        if not _JOB_ID_RE.match(job_id or "") or job_id in (".", ".."):
            raise ValueError(f"invalid job_id for file store: {job_id!r}")
        self.root_dir.mkdir(parents=True, exist_ok=True)
        return self.root_dir / f"{job_id}.json"

    def get(self, job_id: str) -> Optional[JobRecord]:
        p = self._path(job_id)
        if not p.exists():
            return None
        obj = json.loads(p.read_text(encoding="utf-8"))
        return JobRecord.from_dict(obj)

    def put(self, rec: JobRecord) -> None:
        p = self._path(rec.job_id)
        tmp = p.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(rec.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, p)

    def update(
        self,
        job_id: str,
        *,
        fields: Dict[str, Any],
        message: str = "",
        data: Optional[Dict[str, Any]] = None,
        emit_event: bool = False,
    ) -> JobRecord:
        rec = self.get(job_id)
        if rec is None:
            raise NotFoundError(f"job not found: {job_id}", operation="update")

        for k, v in (fields or {}).items():
            if not hasattr(rec, k):
                raise AttributeError(f"JobRecord has no field: {k}")
            setattr(rec, k, v)

        now = _utc_now_iso()
        rec.updated_ts = now
        if emit_event:
            rec.events.append(
                JobEvent(
                    ts=now,
                    status=rec.status,
                    message=message or "updated",
                    data=data or {},
                )
            )

        self.put(rec)
        return rec

    def list_ids(self) -> List[str]:
        if not self.root_dir.exists():
            return []
        return sorted(p.stem for p in self.root_dir.glob("*.json"))


def new_record(
    *,
    job_id: str,
    assigned_service,
    cloud_resource_path: str,
    status: JobStatus,
    service_type: Optional[str] = None,
    image_uri: Optional[str] = None,
) -> JobRecord:
    now = _utc_now_iso()
    return JobRecord(
        job_id=job_id,
        assigned_service=assigned_service,
        cloud_resource_path=cloud_resource_path,
        status=status,
        created_ts=now,
        updated_ts=now,
        service_type=service_type,
        image_uri=image_uri,
        events=[JobEvent(ts=now, status=status, message="submitted", data={"cloud_resource_path": cloud_resource_path})],
    )
