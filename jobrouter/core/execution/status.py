# jobrouter/core/execution/status.py
from __future__ import annotations

from typing import Iterable, Set

from .models import JobStatus


# Highest first: terminal failure, other terminal outcomes, running, pending.
PRECEDENCE = (
    JobStatus.FAILED,
    JobStatus.CANCELLED,
    JobStatus.COMPLETED,
    JobStatus.RUNNING,
    JobStatus.PENDING,
    JobStatus.UNKNOWN,
)

_RANK = {s: i for i, s in enumerate(PRECEDENCE)}

_TERMINAL: Set[JobStatus] = {
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
}


def is_terminal(status: JobStatus) -> bool:
    return status in _TERMINAL


def resolve(signals: Iterable[JobStatus]) -> JobStatus:
    """Collapse co-existing status signals into one, by precedence."""
    best = JobStatus.UNKNOWN
    for s in signals:
        if _RANK[s] < _RANK[best]:
            best = s
    return best


def can_transition(src: JobStatus, dst: JobStatus) -> bool:
    if src == dst:
        return True
    if src in _TERMINAL:
        return False
    # a known status is never overwritten with UNKNOWN
    if dst == JobStatus.UNKNOWN:
        return False
    return True
