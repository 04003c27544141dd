"""
Typed operation results.

Engines return these instead of raising so that callers can decide whether
to retry, surface or drop a failure.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class OperationResult(BaseModel, Generic[T]):
    """
    Outcome of a whole operation.

    Fields:
        ok: Whether the operation completed
        value: The produced value when ``ok`` is True
        error: Machine-readable error code when ``ok`` is False
        message: Human-readable error description
    """

    ok: bool
    value: T | None = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: Exception) -> "OperationResult[T]":
        code = getattr(exc, "code", "error")
        return cls(ok=False, error=code, message=str(exc) or code)
