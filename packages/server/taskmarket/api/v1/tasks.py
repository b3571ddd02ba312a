"""
Task endpoints: create, read, apply, complete, comments, bookmark.

Lifecycle: open → matched (an application is accepted) → completed.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends

from taskmarket.api.v1.deps import get_service, unwrap
from taskmarket.services.collaboration import CollaborationService
from taskmarket_shared.schemas.comments import CommentCreate, CommentRead, CommentTree
from taskmarket_shared.schemas.common import TaskStatus
from taskmarket_shared.schemas.tasks import (
    ApplicationCreate,
    ApplicationRead,
    ApplyResult,
    CompleteTaskRequest,
    CompletionResult,
    TaskCreate,
    TaskRead,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[TaskRead])
async def list_tasks_endpoint(
    status: Optional[TaskStatus] = None,
    service: CollaborationService = Depends(get_service),
):
    """List tasks, newest first, with an optional status filter."""
    return unwrap(await service.list_tasks(status))


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    body: TaskCreate,
    service: CollaborationService = Depends(get_service),
):
    """Post a new open task as the current user."""
    return unwrap(await service.create_task(body))


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: str,
    service: CollaborationService = Depends(get_service),
):
    return unwrap(await service.get_task(task_id))


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


@router.post("/{task_id}/applications", response_model=ApplyResult, status_code=201)
async def apply_endpoint(
    task_id: str,
    body: ApplicationCreate,
    service: CollaborationService = Depends(get_service),
):
    """
    Apply for a task. Opens a chat with the task creator, or reuses the one
    that already exists for this applicant.
    """
    return unwrap(
        await service.apply_for_task(task_id, body.message, applicant_name=body.applicant_name)
    )


@router.get("/{task_id}/applications", response_model=List[ApplicationRead])
async def list_applications_endpoint(
    task_id: str,
    service: CollaborationService = Depends(get_service),
):
    return unwrap(await service.list_applications(task_id))


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@router.post("/{task_id}/complete", response_model=CompletionResult)
async def complete_endpoint(
    task_id: str,
    body: CompleteTaskRequest,
    service: CollaborationService = Depends(get_service),
):
    """Mark the task completed and review the other participant."""
    return unwrap(
        await service.complete_task(task_id, body.rating, body.review_text, body.chat_id)
    )


# ---------------------------------------------------------------------------
# Comments & bookmarks
# ---------------------------------------------------------------------------


@router.post("/{task_id}/comments", response_model=CommentRead, status_code=201)
async def add_comment_endpoint(
    task_id: str,
    body: CommentCreate,
    service: CollaborationService = Depends(get_service),
):
    return unwrap(await service.add_comment(task_id, body.content, body.parent_id))


@router.get("/{task_id}/comments", response_model=CommentTree)
async def comment_tree_endpoint(
    task_id: str,
    service: CollaborationService = Depends(get_service),
):
    return unwrap(await service.comment_tree(task_id))


@router.post("/{task_id}/bookmark")
async def toggle_bookmark_endpoint(
    task_id: str,
    service: CollaborationService = Depends(get_service),
):
    return {"task_id": task_id, "bookmarked": unwrap(await service.toggle_bookmark(task_id))}
