"""
Error taxonomy for collaboration operations.

Services raise these; the public facade converts them into
``OperationResult`` failures so UI code never sees an exception.
"""

from __future__ import annotations

from typing import Any, Awaitable, TypeVar

import structlog

from taskmarket_shared.schemas.common import ErrorKind
from taskmarket_shared.schemas.results import ErrorInfo, OperationResult

log = structlog.get_logger()

T = TypeVar("T")


class CollaborationError(Exception):
    kind: ErrorKind = ErrorKind.PRECONDITION_FAILED

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message, details=self.details)


class NotFound(CollaborationError):
    kind = ErrorKind.NOT_FOUND


class PreconditionFailed(CollaborationError):
    kind = ErrorKind.PRECONDITION_FAILED


class StoreUnavailable(CollaborationError):
    kind = ErrorKind.STORE_UNAVAILABLE


class Unauthenticated(CollaborationError):
    kind = ErrorKind.UNAUTHENTICATED


class DerivedStateStale(CollaborationError):
    """A recomputation failed after its primary write succeeded. Logged only."""

    kind = ErrorKind.DERIVED_STATE_STALE


async def run_operation(name: str, operation: Awaitable[T]) -> OperationResult:
    """Await a service call and fold its outcome into an OperationResult."""
    try:
        value = await operation
    except CollaborationError as exc:
        log.info(
            "operation.failed",
            operation=name,
            kind=exc.kind.value,
            error=exc.message,
        )
        return OperationResult.failure(exc.to_info())
    except Exception:
        log.exception("operation.crashed", operation=name)
        return OperationResult.failure(
            ErrorInfo(kind=ErrorKind.INTERNAL, message="Something went wrong, please try again")
        )
    return OperationResult.success(value)
