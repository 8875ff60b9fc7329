from __future__ import annotations

from typing import Any, Dict, Optional


class JobRouterError(Exception):
    """Base error. Carries enough context to act on from a single log line."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        resource_path: Optional[str] = None,
        step: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.resource_path = resource_path
        self.step = step
        self.cause = cause

    def context(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.operation:
            out["operation"] = self.operation
        if self.step:
            out["step"] = self.step
        if self.resource_path:
            out["resource_path"] = self.resource_path
        if self.cause is not None:
            out["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return out

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.step:
            parts.append(f"step={self.step}")
        if self.resource_path:
            parts.append(f"resource_path={self.resource_path}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " ".join(parts)


class ConfigurationError(JobRouterError):
    """Missing or invalid configuration. Fatal, never retried."""


class SubmissionError(JobRouterError):
    """Backend rejected job creation.

    For multi-step submissions ``step`` names the step that failed and
    ``resource_path`` holds whatever was already created, so the caller can
    clean it up.
    """


class NotFoundError(JobRouterError):
    """The backend (or the job store) does not know the referenced job."""


class NotRegisteredError(JobRouterError):
    """No provider is registered for the requested tier in this deployment."""

    def __init__(self, message: str, *, service: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.service = service


class BackendTransientError(JobRouterError):
    """Network, timeout or overload talking to a backend. Safe to retry at the caller."""


class BackendError(JobRouterError):
    """Non-transient backend failure on a status, cancel or list call."""
