"""Discriminated success/failure envelope returned by every public operation."""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from .common import ErrorKind

T = TypeVar("T")


class ErrorInfo(BaseModel):
    kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class OperationResult(BaseModel, Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorInfo) -> "OperationResult":
        return cls(ok=False, error=error)
