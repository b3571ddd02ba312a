"""
Message stream: the ordered, append-only log of a chat.

Messages are never edited or deleted. Every append also refreshes the chat's
denormalized ``last_message`` / ``last_message_timestamp`` summary; that
refresh is best-effort and a failure there is logged, not raised.

Consumers render messages by ascending ``timestamp``, ties broken by the
store's commit order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog

from taskmarket.core.errors import CollaborationError, PreconditionFailed
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore, Snapshot, where
from taskmarket.models import collections
from taskmarket_shared.schemas.chats import ChatRead, MessageRead
from taskmarket_shared.schemas.common import SYSTEM_SENDER, Location, MessageType

log = structlog.get_logger()

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

MessagesCallback = Callable[[list[MessageRead]], Union[None, Awaitable[None]]]

SUMMARY_TEXT = {
    MessageType.LOCATION_REQUEST: "Location sharing requested",
    MessageType.LOCATION_SHARED: "📍 Location shared",
}


def summarize(message_type: MessageType, payload: dict, sender_id: str) -> str:
    """Text shown in chat lists for the most recent message."""
    if message_type == MessageType.TEXT:
        content = payload.get("content", "")
        return f"📢 {content}" if sender_id == SYSTEM_SENDER else content
    if message_type == MessageType.LOCATION_RESPONSE:
        return "Location sharing approved" if payload["approved"] else "Location sharing declined"
    return SUMMARY_TEXT[message_type]


def _validate_payload(message_type: MessageType, payload: dict) -> dict:
    if message_type == MessageType.TEXT:
        content = str(payload.get("content") or "").strip()
        if not content:
            raise PreconditionFailed("Message content is required")
        return {"content": content}
    if message_type == MessageType.LOCATION_REQUEST:
        return {"content": str(payload.get("content") or "")}
    if message_type == MessageType.LOCATION_RESPONSE:
        approved = payload.get("approved")
        if not isinstance(approved, bool):
            raise PreconditionFailed("A location response must say whether it was approved")
        return {"approved": approved}
    location = payload.get("location")
    if location is None:
        raise PreconditionFailed("A shared location must carry the location")
    return {"location": Location.model_validate(location).model_dump(mode="json")}


def order_messages(snapshots: Iterable[Snapshot]) -> list[MessageRead]:
    pairs = [(MessageRead.model_validate(s.to_dict()), s.seq) for s in snapshots]
    pairs.sort(key=lambda pair: (pair[0].timestamp or _EPOCH, pair[1]))
    return [message for message, _ in pairs]


def visible_messages(messages: Iterable[MessageRead], user_id: Optional[str]) -> list[MessageRead]:
    """Drop system messages addressed to the other participant."""
    return [m for m in messages if m.visible_to is None or m.visible_to == user_id]


def chat_from_snapshot(snapshot: Snapshot) -> ChatRead:
    return ChatRead.model_validate(snapshot.to_dict())


def require_participant(chat: ChatRead, user_id: str) -> None:
    if user_id not in chat.participants:
        raise PreconditionFailed(
            "You are not a participant in this chat", chat_id=chat.id, user_id=user_id
        )


class MessageStream:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def get_chat(self, chat_id: str) -> ChatRead:
        snapshot = await self._store.get_or_raise(collections.CHATS, chat_id, "Chat")
        return chat_from_snapshot(snapshot)

    async def append(
        self,
        chat_id: str,
        sender_id: str,
        message_type: Union[MessageType, str],
        payload: Optional[dict[str, Any]] = None,
        *,
        visible_to: Optional[str] = None,
    ) -> str:
        """Append one message and return its id."""
        message_type = MessageType(message_type)
        body = _validate_payload(message_type, payload or {})

        chat = await self.get_chat(chat_id)
        if sender_id != SYSTEM_SENDER:
            require_participant(chat, sender_id)

        message_id = await self._store.add(
            collections.MESSAGES,
            {
                "chat_id": chat_id,
                "sender_id": sender_id,
                "type": message_type.value,
                "visible_to": visible_to,
                "timestamp": SERVER_TIMESTAMP,
                **body,
            },
        )
        log.info(
            "messages.appended",
            chat_id=chat_id,
            message_id=message_id,
            type=message_type.value,
            sender_id=sender_id,
        )

        await self._update_summary(chat_id, sender_id, summarize(message_type, body, sender_id))
        return message_id

    async def _update_summary(self, chat_id: str, sender_id: str, text: str) -> None:
        fields: dict = {
            "last_message": text,
            "last_message_timestamp": SERVER_TIMESTAMP,
        }
        if sender_id != SYSTEM_SENDER:
            # The sender has seen their own message
            fields[("last_read_by", sender_id)] = SERVER_TIMESTAMP
        try:
            await self._store.update(collections.CHATS, chat_id, fields)
        except CollaborationError as exc:
            log.warning(
                "messages.summary_update_failed",
                chat_id=chat_id,
                kind=exc.kind.value,
                error=exc.message,
            )

    async def send_system_message(
        self, chat_id: str, content: str, visible_to: Optional[str] = None
    ) -> str:
        return await self.append(
            chat_id,
            SYSTEM_SENDER,
            MessageType.TEXT,
            {"content": content},
            visible_to=visible_to,
        )

    async def mark_read(self, chat_id: str, user_id: str) -> None:
        chat = await self.get_chat(chat_id)
        require_participant(chat, user_id)
        await self._store.update(
            collections.CHATS, chat_id, {("last_read_by", user_id): SERVER_TIMESTAMP}
        )

    async def list_messages(
        self, chat_id: str, viewer_id: Optional[str] = None
    ) -> list[MessageRead]:
        snapshots = await self._store.query(
            collections.MESSAGES, where("chat_id", "==", chat_id)
        )
        messages = order_messages(snapshots)
        return visible_messages(messages, viewer_id) if viewer_id else messages

    def subscribe(
        self,
        chat_id: str,
        on_change: MessagesCallback,
        viewer_id: Optional[str] = None,
    ) -> Callable[[], None]:
        """Deliver the chat's ordered messages on every change. Returns unsubscribe."""

        def deliver(snapshots: list[Snapshot]):
            messages = order_messages(snapshots)
            if viewer_id:
                messages = visible_messages(messages, viewer_id)
            return on_change(messages)

        return self._store.subscribe(
            collections.MESSAGES, [where("chat_id", "==", chat_id)], deliver
        )
