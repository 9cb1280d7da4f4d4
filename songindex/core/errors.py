"""Error types raised by the index pipeline and surfaced to API clients.

Extraction and relation helpers never raise these; they degrade to absence.
Fetch, build and validation failures raise one of the subclasses below and
are never retried inside the service.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    MALFORMED_UPSTREAM_DATA = "malformed_upstream_data"
    NOT_FOUND = "not_found"
    VALIDATION_REJECTED = "validation_rejected"


class IndexServiceError(Exception):
    """Base error. Carries a stable kind, an HTTP status and diagnostic context."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        """Structured error body returned to clients."""
        return {"error": self.kind.value, "message": self.message, **self.context}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, kind={self.kind.value!r})"


class UpstreamUnavailable(IndexServiceError):
    """Row store request failed or returned a non-success status."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502


class UpstreamTimeout(IndexServiceError):
    """Row store did not answer within the configured timeout."""

    kind = ErrorKind.UPSTREAM_TIMEOUT
    status_code = 504


class MalformedUpstreamData(IndexServiceError):
    """Row store answered successfully but the body could not be decoded."""

    kind = ErrorKind.MALFORMED_UPSTREAM_DATA
    status_code = 502


class NotFound(IndexServiceError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ValidationRejected(IndexServiceError):
    """A write touched a field outside the allow-list or an out-of-domain value."""

    kind = ErrorKind.VALIDATION_REJECTED
    status_code = 400
