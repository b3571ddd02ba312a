"""Task comment schemas and the projected two-level comment tree."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    parent_id: Optional[str] = None


class CommentRead(BaseModel):
    id: str
    task_id: str
    author_id: str
    content: str = ""
    parent_id: Optional[str] = None
    timestamp: Optional[datetime] = None


class CommentNode(CommentRead):
    replies: list[CommentRead] = Field(default_factory=list)


class CommentTree(BaseModel):
    roots: list[CommentNode] = Field(default_factory=list)
    # Replies whose parent is not part of the current snapshot
    orphans: list[CommentRead] = Field(default_factory=list)
