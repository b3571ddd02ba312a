"""Review and rating schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReviewRead(BaseModel):
    id: str
    task_id: str
    reviewer_id: str
    user_id: str
    rating: int
    content: str = ""
    created_at: Optional[datetime] = None


class UserProfileRead(BaseModel):
    id: str
    display_name: str = ""
    rating: float = 0.0
    rating_count: int = 0
    bookmarked_tasks: list[str] = Field(default_factory=list)
