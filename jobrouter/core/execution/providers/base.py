from __future__ import annotations

import concurrent.futures
import hashlib
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from google.api_core import exceptions as gexc

from ..errors import (
    BackendError,
    BackendTransientError,
    JobRouterError,
    NotFoundError,
    SubmissionError,
)
from ..models import JobConfig, JobResult, JobStatus

DEFAULT_RESOURCE_PREFIX = "jobrouter-"

_TRANSIENT = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.TooManyRequests,
    gexc.ResourceExhausted,
    gexc.BadGateway,
    gexc.GatewayTimeout,
    gexc.Aborted,
    gexc.RetryError,
    concurrent.futures.TimeoutError,
    TimeoutError,
    ConnectionError,
)


class ExecutionProvider(ABC):
    """Uniform job-execution contract over one backend service.

    Implementations keep no job state; the backend is the source of truth and
    every call is a fresh remote read or write bounded by ``timeout``.
    """

    @abstractmethod
    def service_type(self) -> str:
        """Stable identifier used in logs and persisted records."""

    @abstractmethod
    def submit_job(self, config: JobConfig, *, timeout: Optional[float] = None) -> JobResult:
        """Create (and start) the backend job. Returns the durable handle."""

    @abstractmethod
    def get_job_status(self, resource_path: str, *, timeout: Optional[float] = None) -> JobStatus:
        """Raises NotFoundError for a path the backend does not know."""

    @abstractmethod
    def cancel_job(self, resource_path: str, *, timeout: Optional[float] = None) -> None:
        """Best-effort cancel. Already-terminal jobs are a no-op success."""

    @abstractmethod
    def list_jobs(self, *, timeout: Optional[float] = None) -> List[str]:
        """Resource paths owned by this system only."""


def translate_backend_error(
    exc: BaseException,
    *,
    operation: str,
    resource_path: Optional[str] = None,
    step: Optional[str] = None,
) -> JobRouterError:
    """Map a client-library exception onto the error taxonomy."""
    if isinstance(exc, JobRouterError):
        return exc

    kw = dict(operation=operation, resource_path=resource_path, step=step, cause=exc)

    if isinstance(exc, _TRANSIENT):
        return BackendTransientError("backend unavailable", **kw)

    if operation == "submit_job":
        return SubmissionError("backend rejected job submission", **kw)

    if isinstance(exc, gexc.NotFound):
        return NotFoundError("resource not found", **kw)

    return BackendError("backend call failed", **kw)


_INVALID_ID_CHARS = re.compile(r"[^a-z0-9-]+")
_DIGEST_LEN = 8


def resource_id(job_id: str, prefix: str = DEFAULT_RESOURCE_PREFIX, max_len: int = 63) -> str:
    """Backend resource id for a job: prefix + lowercase [a-z0-9-], <= max_len.

    Ids that survive sanitising unchanged map to ``prefix + job_id``. Anything
    rewritten or truncated gets an 8-hex sha1 suffix of the raw id so distinct
    job ids never share a backend resource.
    """
    raw = job_id or ""
    rid = _INVALID_ID_CHARS.sub("-", raw.strip().lower()).strip("-")
    if rid == raw and len(prefix) + len(rid) <= max_len:
        return prefix + rid
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:_DIGEST_LEN]
    room = max_len - len(prefix) - _DIGEST_LEN - 1
    head = rid[:room].rstrip("-")
    return f"{prefix}{head}-{digest}" if head else f"{prefix}{digest}"


def owned(resource_path: str, prefix: str = DEFAULT_RESOURCE_PREFIX) -> bool:
    """True when the last path segment follows this system's naming convention."""
    return (resource_path or "").rstrip("/").rsplit("/", 1)[-1].startswith(prefix)


def enum_name(value) -> str:
    """Name of a proto enum value; plain strings pass through."""
    if value is None:
        return ""
    return str(getattr(value, "name", value))
