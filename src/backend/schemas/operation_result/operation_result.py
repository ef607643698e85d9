"""
Uniform result returned by every lifecycle operation.
"""
from typing import Any, Optional

from core.exceptions import ErrorKind
from core.schema_base import HTTPSchemaModel


class OperationResult(HTTPSchemaModel):
    """Outcome of one operation.

    On failure ``data`` is None and ``error_kind`` names the failure class; the
    transaction has already been rolled back.
    """

    status: bool
    data: Any = None
    message: str = ""
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, data: Any = None, message: str = "") -> "OperationResult":
        return cls(status=True, data=data, message=message)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "OperationResult":
        return cls(status=False, message=message, error_kind=error_kind)
