"""User-scoped reads: unread chats, bookmarks, reviews."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from taskmarket.api.v1.deps import get_service, unwrap
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.chats import UnreadSummary
from taskmarket_shared.schemas.reviews import ReviewRead

router = APIRouter()


@router.get("/me/chats/unread", response_model=UnreadSummary)
async def unread_endpoint(service: CollaborationService = Depends(get_service)):
    return unwrap(await service.unread_summary())


@router.get("/me/bookmarks", response_model=List[str])
async def bookmarks_endpoint(service: CollaborationService = Depends(get_service)):
    return unwrap(await service.list_bookmarks())


@router.get("/{user_id}/reviews", response_model=List[ReviewRead])
async def reviews_endpoint(
    user_id: str,
    service: CollaborationService = Depends(get_service),
):
    """Reviews received by ``user_id``, newest first."""
    return unwrap(await service.list_user_reviews(user_id))
