"""Chat, message and location-negotiation schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Location, MessageType


class ChatRead(BaseModel):
    id: str
    task_id: str
    task_title: str = ""
    participants: list[str] = Field(default_factory=list)
    participant_names: dict[str, str] = Field(default_factory=dict)
    creator_id: str
    applicant_id: str
    last_message: Optional[str] = None
    last_message_timestamp: Optional[datetime] = None
    last_read_by: dict[str, datetime] = Field(default_factory=dict)
    task_completed: bool = False
    created_at: Optional[datetime] = None

    def counterpart_of(self, user_id: str) -> Optional[str]:
        others = [p for p in self.participants if p != user_id]
        return others[0] if others else None


class MessageRead(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    type: MessageType = MessageType.TEXT
    content: str = ""
    approved: Optional[bool] = None
    location: Optional[Location] = None
    visible_to: Optional[str] = None
    timestamp: Optional[datetime] = None


class PostMessageRequest(BaseModel):
    content: str = Field(min_length=1)


class LocationResponseRequest(BaseModel):
    """Request body for POST /chats/{chat_id}/location/respond."""
    approved: bool
    task_id: str


class LocationResponseResult(BaseModel):
    shared: bool


class UnreadSummary(BaseModel):
    count: int
    chat_ids: list[str] = Field(default_factory=list)
