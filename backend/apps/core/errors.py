"""
Error taxonomy for DocuInsight.

Every component raises one of the ServiceError subclasses below. The
error kind decides how the HTTP boundary reports it (see responses.py);
components never build responses themselves.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Tag carried by every service error."""
    VALIDATION = 'VALIDATION'
    NOT_FOUND = 'NOT_FOUND'
    FORBIDDEN = 'FORBIDDEN'
    UPSTREAM_MODEL = 'UPSTREAM_MODEL'
    STORAGE = 'STORAGE'
    UNAUTHENTICATED = 'UNAUTHENTICATED'


class ServiceError(Exception):
    """Base class for all expected failures raised by the core."""
    kind: ErrorKind = ErrorKind.VALIDATION
    default_code = 'ERROR'

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    @property
    def is_fault(self) -> bool:
        """True for errors caused by our side or a dependency, not the caller."""
        return self.kind in (ErrorKind.UPSTREAM_MODEL, ErrorKind.STORAGE)


class ValidationError(ServiceError):
    """Bad input: empty or oversized file, unsupported type, bad limits."""
    kind = ErrorKind.VALIDATION
    default_code = 'VALIDATION_ERROR'


class AuthenticationError(ServiceError):
    """Missing, malformed, expired or otherwise rejected credentials."""
    kind = ErrorKind.UNAUTHENTICATED
    default_code = 'UNAUTHENTICATED'


class NotFoundError(ServiceError):
    """The referenced document or chunk does not exist."""
    kind = ErrorKind.NOT_FOUND
    default_code = 'NOT_FOUND'


class ForbiddenError(ServiceError):
    """The resource exists but belongs to someone else."""
    kind = ErrorKind.FORBIDDEN
    default_code = 'FORBIDDEN'


class UpstreamModelError(ServiceError):
    """
    The embedding or generation provider failed or returned malformed data.

    `retriable` marks transport-level failures (timeouts, connection
    errors, 5xx) that a backfill job may try again.
    """
    kind = ErrorKind.UPSTREAM_MODEL
    default_code = 'UPSTREAM_MODEL_ERROR'

    def __init__(self, message: str, code: Optional[str] = None, retriable: bool = False):
        super().__init__(message, code)
        self.retriable = retriable


class StorageError(ServiceError):
    """Blob read/write/delete failure."""
    kind = ErrorKind.STORAGE
    default_code = 'STORAGE_ERROR'
