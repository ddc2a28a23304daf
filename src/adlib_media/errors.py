"""Exception taxonomy for media resolution.

Strategy-level errors (``Unreachable``, ``NoCandidateFound``, ``StrategyTimeout``)
never cross the orchestrator; strategies convert them into ``Failure`` values.
``RemoteJobError`` and ``CredentialInvalid`` are the only errors callers see.
"""

from __future__ import annotations

from .models import FailureReason, JobStatus


class MediaResolutionError(RuntimeError):
    """Base class for every error raised by this package."""


class StrategyError(MediaResolutionError):
    reason: FailureReason = FailureReason.UNREACHABLE


class Unreachable(StrategyError):
    reason = FailureReason.UNREACHABLE


class NoCandidateFound(StrategyError):
    reason = FailureReason.NO_CANDIDATE


class StrategyTimeout(StrategyError):
    reason = FailureReason.TIMEOUT


class NavigationError(StrategyError):
    reason = FailureReason.NAVIGATION_ERROR


class RemoteJobError(MediaResolutionError):
    """A managed scrape job ended FAILED, ABORTED or TIMED_OUT, or its results could not be fetched."""

    def __init__(self, status: JobStatus, job_id: str | None = None, message: str | None = None):
        self.status = status
        self.job_id = job_id
        super().__init__(message or _default_job_message(status, job_id))


def _default_job_message(status: JobStatus, job_id: str | None) -> str:
    ref = f" {job_id}" if job_id else ""
    if status == JobStatus.TIMED_OUT:
        return f"scrape job{ref} did not finish before the polling ceiling"
    if status == JobStatus.ABORTED:
        return f"scrape job{ref} was aborted by the job runner"
    return f"scrape job{ref} finished with status {status.value}"


class CredentialInvalid(MediaResolutionError):
    """Authentication rejected (HTTP 401 class). Never retried automatically."""

    def __init__(self, service: str, message: str | None = None):
        self.service = service
        super().__init__(message or f"{service} rejected the supplied credential")


class PersistenceFailure(MediaResolutionError):
    """Durable storage or record upsert failed for one item."""


class BrowserRestartRequired(RuntimeError):
    """Signal that the shared browser died and must be relaunched."""


def is_auth_error(exc: BaseException) -> bool:
    """True for HTTP 401/403 style errors from requests or the job-runner client."""

    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status in (401, 403)


__all__ = [
    "BrowserRestartRequired",
    "CredentialInvalid",
    "MediaResolutionError",
    "NavigationError",
    "NoCandidateFound",
    "PersistenceFailure",
    "RemoteJobError",
    "StrategyError",
    "StrategyTimeout",
    "Unreachable",
    "is_auth_error",
]
