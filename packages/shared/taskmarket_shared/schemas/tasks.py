"""Task, application and completion schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import ApplicationStatus, Location, TaskStatus


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str = "other"
    location: Location = Field(default_factory=Location)


class TaskRead(BaseModel):
    id: str
    title: str
    description: str = ""
    category: str = "other"
    status: TaskStatus = TaskStatus.OPEN
    creator_id: str
    assigned_user_id: Optional[str] = None
    matched_application_id: Optional[str] = None
    location_shared: bool = False
    location: Location = Field(default_factory=Location)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

class ApplicationCreate(BaseModel):
    """Request body for POST /tasks/{task_id}/applications."""
    message: str = Field(min_length=1)
    applicant_name: str = ""


class ApplicationRead(BaseModel):
    id: str
    task_id: str
    applicant_id: str
    applicant_name: str = ""
    message: str
    status: ApplicationStatus = ApplicationStatus.PENDING
    chat_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ApplyResult(BaseModel):
    chat_id: str
    application_id: str


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

class CompleteTaskRequest(BaseModel):
    """Request body for POST /tasks/{task_id}/complete."""
    rating: int
    review_text: str = ""
    chat_id: Optional[str] = None


class CompletionResult(BaseModel):
    task_id: str
    review_id: str
    reviewee_id: str
