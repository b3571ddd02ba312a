"""Application decisions. Only the task creator may accept or reject."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from taskmarket.api.v1.deps import get_service, unwrap
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.tasks import ApplicationRead

router = APIRouter()


@router.post("/{application_id}/accept", response_model=ApplicationRead)
async def accept_endpoint(
    application_id: str,
    service: CollaborationService = Depends(get_service),
):
    """Accept an application: the task becomes matched to its applicant."""
    return unwrap(await service.accept_application(application_id))


@router.post("/{application_id}/reject", response_model=ApplicationRead)
async def reject_endpoint(
    application_id: str,
    service: CollaborationService = Depends(get_service),
):
    return unwrap(await service.reject_application(application_id))
