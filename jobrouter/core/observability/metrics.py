from __future__ import annotations

from collections import Counter
from typing import Dict, Optional

from prometheus_client import Counter as PromCounter
from prometheus_client import Histogram

# Job operations (dispatch-level)
_JOB_OPS = Counter()

_PROM_JOB_OPS = PromCounter(
    "jobrouter_job_operations_total",
    "Job operations forwarded to execution providers",
    ["operation", "service", "outcome"],
)

_PROM_JOB_OP_SECONDS = Histogram(
    "jobrouter_job_operation_duration_seconds",
    "Job operation duration in seconds",
    ["operation", "service"],
)


def reset_metrics() -> None:
    """
    Test helper: clears in-process counters to avoid cross-test leakage.
    Prometheus collectors are process-global and are not reset.
    """
    _JOB_OPS.clear()


def observe_job_op(operation: str, service: Optional[str], outcome: str, seconds: Optional[float] = None) -> None:
    """
    Record one provider operation.

    outcome is "ok" or the error class name (e.g. "BackendTransientError").
    """
    op = operation or "unknown"
    svc = service or "none"
    out = outcome or "unknown"

    _JOB_OPS["job_ops_total"] += 1
    _JOB_OPS[f"{op}|{svc}|{out}"] += 1
    _PROM_JOB_OPS.labels(operation=op, service=svc, outcome=out).inc()
    if seconds is not None:
        _PROM_JOB_OP_SECONDS.labels(operation=op, service=svc).observe(max(0.0, float(seconds)))


def snapshot_job_ops() -> Dict[str, int]:
    return dict(_JOB_OPS)
