"""
Chat endpoints: messages, read markers, location negotiation and a live
SSE stream of the message list.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from taskmarket.api.v1.deps import get_service, unwrap
from taskmarket.core.sse import SnapshotQueue, snapshot_stream
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.chats import (
    LocationResponseRequest,
    LocationResponseResult,
    MessageRead,
    PostMessageRequest,
)

router = APIRouter()


@router.get("/{chat_id}/messages", response_model=List[MessageRead])
async def list_messages_endpoint(
    chat_id: str,
    service: CollaborationService = Depends(get_service),
):
    """Messages in display order, without system notes meant for the other participant."""
    return unwrap(await service.list_messages(chat_id))


@router.post("/{chat_id}/messages", status_code=201)
async def post_message_endpoint(
    chat_id: str,
    body: PostMessageRequest,
    service: CollaborationService = Depends(get_service),
):
    return {"id": unwrap(await service.send_message(chat_id, body.content))}


@router.post("/{chat_id}/read", status_code=204)
async def mark_read_endpoint(
    chat_id: str,
    service: CollaborationService = Depends(get_service),
):
    unwrap(await service.mark_read(chat_id))


# --- Location negotiation ---


@router.get("/{chat_id}/location")
async def location_state_endpoint(
    chat_id: str,
    service: CollaborationService = Depends(get_service),
):
    return {"state": unwrap(await service.location_state(chat_id))}


@router.post("/{chat_id}/location/request", status_code=201)
async def request_location_endpoint(
    chat_id: str,
    service: CollaborationService = Depends(get_service),
):
    return {"id": unwrap(await service.request_location(chat_id))}


@router.post("/{chat_id}/location/respond", response_model=LocationResponseResult)
async def respond_location_endpoint(
    chat_id: str,
    body: LocationResponseRequest,
    service: CollaborationService = Depends(get_service),
):
    """Approve or decline the pending location request in this chat."""
    return unwrap(await service.respond_location(chat_id, body.approved, body.task_id))


# --- Live stream ---


@router.get("/{chat_id}/stream")
async def stream_messages(
    request: Request,
    chat_id: str,
    service: CollaborationService = Depends(get_service),
):
    """
    Stream the chat's message list via SSE.

    Every change to the chat sends a `messages` event carrying the full
    ordered list. Emits `: heartbeat` comments while idle.
    """
    queue = SnapshotQueue()
    unsubscribe = unwrap(await service.subscribe_messages(chat_id, queue.put))

    return EventSourceResponse(
        snapshot_stream(
            request,
            queue,
            unsubscribe,
            event="messages",
            encode=lambda messages: [m.model_dump(mode="json") for m in messages],
        )
    )
