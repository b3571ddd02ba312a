"""
Location negotiation layered on the message stream.

The negotiation has no storage of its own; its state is read back from the
chat's messages:

    NONE -> REQUESTED -> SHARED | DECLINED

A settled negotiation can be re-opened by a fresh request until the task's
``location_shared`` flag is set. That flag is the only durable gate.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from taskmarket.core.errors import PreconditionFailed
from taskmarket.core.notifications import NotificationSink, NotificationTypes
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore
from taskmarket.models import collections
from taskmarket.services.messages import MessageStream, require_participant
from taskmarket.services.tasks import TaskService
from taskmarket_shared.schemas.chats import MessageRead
from taskmarket_shared.schemas.common import Location, MessageType, NegotiationState
from taskmarket_shared.schemas.tasks import TaskRead

log = structlog.get_logger()


def negotiation_state(messages: Iterable[MessageRead]) -> NegotiationState:
    """Fold an ordered message list into the current negotiation state."""
    state = NegotiationState.NONE
    for message in messages:
        if message.type == MessageType.LOCATION_REQUEST:
            state = NegotiationState.REQUESTED
        elif message.type == MessageType.LOCATION_RESPONSE and state == NegotiationState.REQUESTED:
            state = NegotiationState.SHARED if message.approved else NegotiationState.DECLINED
        elif message.type == MessageType.LOCATION_SHARED:
            state = NegotiationState.SHARED
    return state


def pending_request(messages: Iterable[MessageRead]) -> Optional[MessageRead]:
    """The latest request that has not been answered yet, if any."""
    pending = None
    for message in messages:
        if message.type == MessageType.LOCATION_REQUEST:
            pending = message
        elif message.type == MessageType.LOCATION_RESPONSE:
            pending = None
    return pending


def resolve_location(task: TaskRead, fallback_address: str) -> Location:
    return Location(
        address=task.location.address or fallback_address,
        coordinates=task.location.coordinates,
    )


class LocationNegotiation:
    def __init__(
        self,
        store: DocumentStore,
        messages: MessageStream,
        tasks: TaskService,
        fallback_address: str = "No address provided",
        notifier: Optional[NotificationSink] = None,
    ):
        self._store = store
        self._messages = messages
        self._tasks = tasks
        self._fallback_address = fallback_address
        self._notifier = notifier

    async def request(self, chat_id: str, requester_id: str, content: str = "") -> str:
        """Ask the other participant to disclose the task location."""
        chat = await self._messages.get_chat(chat_id)
        require_participant(chat, requester_id)

        task = await self._tasks.get_task(chat.task_id)
        if task.location_shared:
            raise PreconditionFailed(
                "Location has already been shared for this task", task_id=task.id
            )

        message_id = await self._messages.append(
            chat_id, requester_id, MessageType.LOCATION_REQUEST, {"content": content}
        )
        log.info("location.requested", chat_id=chat_id, requester_id=requester_id)
        return message_id

    async def respond(
        self, chat_id: str, responder_id: str, approved: bool, task_id: str
    ) -> bool:
        """
        Answer the pending request in ``chat_id``. Returns True when the location
        was shared.

        Nothing on the task changes unless both the response and the shared
        location messages were appended.
        """
        chat = await self._messages.get_chat(chat_id)
        require_participant(chat, responder_id)
        if chat.task_id != task_id:
            raise PreconditionFailed(
                "Chat does not belong to this task", chat_id=chat_id, task_id=task_id
            )

        task = await self._tasks.get_task(task_id)
        if task.location_shared:
            log.info("location.already_shared", chat_id=chat_id, task_id=task_id)
            return False

        request = pending_request(await self._messages.list_messages(chat_id))
        if request is None:
            raise PreconditionFailed("There is no pending location request", chat_id=chat_id)
        if request.sender_id == responder_id:
            raise PreconditionFailed(
                "You cannot respond to your own location request", chat_id=chat_id
            )

        await self._messages.append(
            chat_id, responder_id, MessageType.LOCATION_RESPONSE, {"approved": approved}
        )
        if not approved:
            log.info("location.declined", chat_id=chat_id, responder_id=responder_id)
            return False

        location = resolve_location(task, self._fallback_address)
        await self._messages.append(
            chat_id,
            task.creator_id,
            MessageType.LOCATION_SHARED,
            {"location": location.model_dump(mode="json")},
        )
        await self._store.update(
            collections.TASKS,
            task_id,
            {"location_shared": True, "updated_at": SERVER_TIMESTAMP},
        )
        log.info("location.shared", chat_id=chat_id, task_id=task_id)

        if self._notifier is not None:
            await self._notifier.notify(
                request.sender_id,
                NotificationTypes.LOCATION_SHARED,
                "The exact task location has been shared with you",
                task_id=task_id,
                chat_id=chat_id,
            )
        return True
