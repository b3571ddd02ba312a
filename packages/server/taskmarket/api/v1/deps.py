"""Shared FastAPI dependencies and result-to-HTTP mapping."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from taskmarket.core.auth import AuthContext, get_auth_context
from taskmarket.core.config import get_settings
from taskmarket.core.events import CollaborationEvents
from taskmarket.core.store import DocumentStore
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.common import ErrorKind
from taskmarket_shared.schemas.results import OperationResult

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.PRECONDITION_FAILED: status.HTTP_409_CONFLICT,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.DERIVED_STATE_STALE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_events(request: Request) -> CollaborationEvents:
    return request.app.state.events


def get_service(
    auth: AuthContext = Depends(get_auth_context),
    store: DocumentStore = Depends(get_store),
    events: CollaborationEvents = Depends(get_events),
) -> CollaborationService:
    return CollaborationService(
        store,
        auth,
        events=events,
        fallback_address=get_settings().location_fallback_address,
    )


def unwrap(result: OperationResult) -> Any:
    """Return the result value or raise the matching HTTPException."""
    if result.ok:
        return result.value

    error = result.error
    status_code = STATUS_BY_KIND[error.kind]
    if error.kind == ErrorKind.PRECONDITION_FAILED and "rating" in error.details:
        # Out-of-range input rather than a state conflict
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    raise HTTPException(
        status_code=status_code,
        detail={"code": error.kind.value, "message": error.message},
    )
