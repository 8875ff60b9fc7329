from jobrouter.core.execution.models import JobStatus
from jobrouter.core.execution.status import PRECEDENCE, can_transition, is_terminal, resolve


def test_precedence_order():
    assert PRECEDENCE[0] == JobStatus.FAILED
    assert PRECEDENCE[-1] == JobStatus.UNKNOWN
    assert len(set(PRECEDENCE)) == len(JobStatus)


def test_resolve_picks_highest_signal():
    assert resolve([JobStatus.COMPLETED, JobStatus.FAILED]) == JobStatus.FAILED
    assert resolve([JobStatus.COMPLETED, JobStatus.CANCELLED]) == JobStatus.CANCELLED
    assert resolve([JobStatus.PENDING, JobStatus.RUNNING]) == JobStatus.RUNNING
    assert resolve([]) == JobStatus.UNKNOWN


def test_terminal_states():
    assert {s for s in JobStatus if is_terminal(s)} == {
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }


def test_terminal_is_sticky():
    for src in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
        for dst in JobStatus:
            assert can_transition(src, dst) == (src == dst)


def test_unknown_never_overwrites_known():
    assert can_transition(JobStatus.RUNNING, JobStatus.UNKNOWN) is False
    assert can_transition(JobStatus.UNKNOWN, JobStatus.RUNNING) is True
    assert can_transition(JobStatus.PENDING, JobStatus.COMPLETED) is True
