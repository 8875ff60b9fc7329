from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from jobrouter.core.observability.metrics import observe_job_op

from .dispatcher import Dispatcher
from .errors import NotFoundError
from .models import AssignedService, JobConfig, JobRecord, JobStatus, _utc_now_iso
from .router import RoutingDecision, classify, explain
from .status import can_transition, is_terminal
from .store import FileJobStore, JobStore, new_record

_log = logging.getLogger("jobrouter.service")


class JobService:
    """Job orchestrator.

    - submit(): classify -> dispatch -> persist; job_id is the idempotency key
    - refresh_status(): polls the backend and records transitions; terminal states are sticky
    - cancel(): forwards to the backend, then records the backend terminal state (CANCELLED if none)
    """

    def __init__(self, dispatcher: Dispatcher, store: JobStore, *, timeout: Optional[float] = None):
        self.dispatcher = dispatcher
        self.store = store
        self.timeout = timeout

    def _timed(self, operation: str, service: AssignedService, fn, *args):
        t0 = time.perf_counter()
        outcome = "ok"
        try:
            return fn(*args, timeout=self.timeout)
        except Exception as e:
            outcome = type(e).__name__
            raise
        finally:
            observe_job_op(operation, service.value, outcome, time.perf_counter() - t0)

    def _require(self, job_id: str) -> JobRecord:
        rec = self.store.get(job_id)
        if rec is None:
            raise NotFoundError(f"job not found: {job_id}", operation="lookup")
        return rec

    def route(self, config: JobConfig) -> RoutingDecision:
        return explain(config.resources)

    def submit(self, config: JobConfig) -> JobRecord:
        existing = self.store.get(config.job_id)
        if existing is not None:
            _log.info("job %s already submitted to %s, returning stored record", config.job_id, existing.assigned_service.value)
            return existing

        service = classify(config.resources)
        result = self._timed("submit_job", service, self.dispatcher.submit_job, service, config)

        rec = new_record(
            job_id=config.job_id,
            assigned_service=service,
            cloud_resource_path=result.cloud_resource_path,
            status=result.initial_status,
            service_type=self.dispatcher.provider_for(service).service_type(),
            image_uri=config.image_uri,
        )
        try:
            self.store.put(rec)
        except Exception:
            # the backend resource exists; the path is the only way back to it
            _log.error(
                "job %s submitted but not persisted: service=%s resource_path=%s",
                config.job_id,
                service.value,
                result.cloud_resource_path,
            )
            raise

        _log.info("job %s submitted: service=%s resource_path=%s", config.job_id, service.value, result.cloud_resource_path)
        return rec

    def get(self, job_id: str) -> JobRecord:
        return self._require(job_id)

    def refresh_status(self, job_id: str) -> JobRecord:
        rec = self._require(job_id)
        if is_terminal(rec.status):
            return rec

        st = self._timed(
            "get_job_status", rec.assigned_service, self.dispatcher.get_job_status, rec.assigned_service, rec.cloud_resource_path
        )
        if st == rec.status or not can_transition(rec.status, st):
            return rec

        fields: Dict[str, Any] = {"status": st}
        if is_terminal(st):
            fields["finished_ts"] = _utc_now_iso()
        rec = self.store.update(
            job_id,
            fields=fields,
            message=f"{st.value.lower()} (backend)",
            data={"from": rec.status.value, "to": st.value},
            emit_event=True,
        )
        _log.info("job %s status -> %s", job_id, st.value)
        return rec

    def _status_after_cancel(self, service: AssignedService, path: str) -> JobStatus:
        # providers treat cancel of a finished job as a no-op; the backend decides the final state
        try:
            st = self._timed("get_job_status", service, self.dispatcher.get_job_status, service, path)
        except NotFoundError:
            # Cloud Tasks drops deleted and dispatched tasks alike
            return JobStatus.CANCELLED
        return st if is_terminal(st) else JobStatus.CANCELLED

    def cancel(self, job_id: str) -> JobRecord:
        rec = self._require(job_id)
        if is_terminal(rec.status):
            return rec

        svc, path = rec.assigned_service, rec.cloud_resource_path
        try:
            self._timed("cancel_job", svc, self.dispatcher.cancel_job, svc, path)
            st = self._status_after_cancel(svc, path)
        except Exception as e:
            self.store.update(job_id, fields={"last_error": str(e)})
            raise

        message = "cancelled" if st == JobStatus.CANCELLED else f"{st.value.lower()} before cancel (backend)"
        rec = self.store.update(
            job_id,
            fields={"status": st, "finished_ts": _utc_now_iso()},
            message=message,
            data={"cloud_resource_path": path},
            emit_event=True,
        )
        _log.info("job %s cancel requested, final status %s: %s", job_id, st.value, path)
        return rec

    def list_backend_jobs(self, service: AssignedService) -> List[str]:
        return self._timed("list_jobs", service, self.dispatcher.list_jobs, service)

    def history(self, job_id: str) -> List[Dict[str, Any]]:
        rec = self._require(job_id)
        return rec.to_dict()["events"]


def file_job_service(dispatcher: Dispatcher, *, store_dir, timeout: Optional[float] = None) -> JobService:
    return JobService(dispatcher, FileJobStore(root_dir=store_dir), timeout=timeout)
