"""
Domain-specific exception hierarchy for the phase engine.

All phase exceptions inherit from PhaseError so callers can catch
broadly or narrowly as needed.  Each exception carries structured
context (phase ID, kind, details) for logging/debugging.
"""

from __future__ import annotations


class PhaseError(Exception):
    """Base exception for all phase errors."""

    def __init__(
        self,
        message: str,
        *,
        phase_id: str | None = None,
        kind: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.phase_id = phase_id
        self.kind = kind
        self.details = details or {}
        super().__init__(message)


class StateTableError(PhaseError):
    """A state table is misconfigured.  Fatal at startup."""
    pass


class IllegalTransitionError(PhaseError):
    """The requested edge is not present in the kind's state table."""

    def __init__(
        self,
        message: str,
        *,
        from_state: str | None = None,
        to_state: str | None = None,
        **kwargs,
    ) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(message, **kwargs)


class StepExecutionError(PhaseError):
    """A work function failed during execution."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        **kwargs,
    ) -> None:
        self.retryable = retryable
        super().__init__(message, **kwargs)


class MissingPreconditionError(PhaseError):
    """A verb was invoked without its required input."""
    pass


class ConstructionError(PhaseError):
    """A phase action could not be built (e.g. bulk with no targets)."""
    pass


class UnknownVerbError(PhaseError):
    """The phase kind's handler does not define the requested verb."""
    pass


class StorageError(StepExecutionError):
    """Object storage operation (S3/MinIO) failed."""
    pass


class ServiceRequestError(StepExecutionError):
    """An HTTP collaborator returned an error or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)


class IndexServiceError(ServiceRequestError):
    """The search index service rejected or failed a request."""
    pass


class RepositoryError(ServiceRequestError):
    """A member repository request failed."""
    pass


class ReviewServiceError(ServiceRequestError):
    """The review service rejected or failed a request."""
    pass
