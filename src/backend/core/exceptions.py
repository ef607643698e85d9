"""
Domain exceptions raised by lifecycle operations.

Services raise these; the operation boundary in ``core.decorators`` rolls the
transaction back and turns them into a failed ``OperationResult`` carrying
the matching ``ErrorKind``.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories reported on an OperationResult."""

    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    EXTERNAL_DEPENDENCY = "EXTERNAL_DEPENDENCY"
    NO_FILES_MOVED = "NO_FILES_MOVED"
    UNEXPECTED = "UNEXPECTED"


class DomainError(Exception):
    """Base class for expected, user-facing failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotFoundError(DomainError):
    """Referenced issue, actor, project, visit or request does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(DomainError):
    """A uniqueness invariant would be violated."""

    kind = ErrorKind.CONFLICT


class InvalidStateError(DomainError):
    """The transition is not legal from the current persisted state."""

    kind = ErrorKind.INVALID_STATE


class PermissionDeniedError(DomainError):
    """Actor kind, department or role does not match the operation."""

    kind = ErrorKind.PERMISSION_DENIED


class ExternalDependencyError(DomainError):
    """Object storage or another collaborator failed on the critical path."""

    kind = ErrorKind.EXTERNAL_DEPENDENCY


class NoFilesMovedError(ExternalDependencyError):
    """An attachment confirmation found nothing under the temporary prefix."""

    kind = ErrorKind.NO_FILES_MOVED
