"""Completion & review engine: closes a matched task and records the caller's review."""

from __future__ import annotations

from typing import Optional

import structlog

from taskmarket.core.errors import NotFound, PreconditionFailed
from taskmarket.core.events import CollaborationEvents
from taskmarket.core.notifications import NotificationSink, NotificationTypes
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore, where
from taskmarket.models import collections
from taskmarket.services.messages import MessageStream, chat_from_snapshot, require_participant
from taskmarket.services.reviews import ReviewService
from taskmarket.services.tasks import TaskService, check_transition
from taskmarket_shared.schemas.chats import ChatRead
from taskmarket_shared.schemas.common import TaskStatus
from taskmarket_shared.schemas.tasks import CompletionResult, TaskRead

log = structlog.get_logger()


class CompletionEngine:
    def __init__(
        self,
        store: DocumentStore,
        tasks: TaskService,
        messages: MessageStream,
        reviews: ReviewService,
        events: CollaborationEvents,
        notifier: NotificationSink,
    ):
        self._store = store
        self._tasks = tasks
        self._messages = messages
        self._reviews = reviews
        self._events = events
        self._notifier = notifier

    async def _resolve_chat(
        self, task: TaskRead, actor_id: str, chat_id: Optional[str]
    ) -> ChatRead:
        if chat_id:
            chat = await self._messages.get_chat(chat_id)
            if chat.task_id != task.id:
                raise PreconditionFailed(
                    "Chat does not belong to this task", chat_id=chat_id, task_id=task.id
                )
            if chat.applicant_id != task.assigned_user_id:
                raise PreconditionFailed(
                    "Only the assigned helper's chat can be used to complete this task",
                    chat_id=chat_id,
                    task_id=task.id,
                )
        else:
            chats = await self._store.query(
                collections.CHATS,
                where("task_id", "==", task.id),
                where("applicant_id", "==", task.assigned_user_id),
            )
            if not chats:
                raise NotFound("Chat not found", task_id=task.id)
            chat = chat_from_snapshot(chats[0])
        require_participant(chat, actor_id)
        return chat

    async def complete_task(
        self,
        task_id: str,
        actor_id: str,
        rating: int,
        review_text: str = "",
        chat_id: Optional[str] = None,
    ) -> CompletionResult:
        """
        Mark the task completed (if it is not already) and record ``actor_id``'s
        review of the other chat participant.

        Either participant may call this; the second caller finds the task
        already completed and only adds their review.
        """
        task = await self._tasks.get_task(task_id)
        if actor_id not in (task.creator_id, task.assigned_user_id):
            raise PreconditionFailed(
                "Only the task creator or the assigned helper can complete this task",
                task_id=task_id,
            )

        already_completed = task.status == TaskStatus.COMPLETED
        if not already_completed:
            check_transition(task.status, TaskStatus.COMPLETED)

        chat = await self._resolve_chat(task, actor_id, chat_id)
        reviewee_id = chat.counterpart_of(actor_id)
        if reviewee_id is None:
            raise PreconditionFailed("Chat has no counterpart to review", chat_id=chat.id)

        # No writes happen unless the review would be accepted
        await self._reviews.ensure_can_review(task_id, actor_id, reviewee_id, rating)

        if not already_completed:
            await self._store.update(
                collections.TASKS,
                task_id,
                {
                    "status": TaskStatus.COMPLETED.value,
                    "completed_at": SERVER_TIMESTAMP,
                    "updated_at": SERVER_TIMESTAMP,
                },
            )
            await self._store.update(collections.CHATS, chat.id, {"task_completed": True})
            await self._messages.send_system_message(
                chat.id, "The task has been marked as completed."
            )
            log.info("tasks.completed", task_id=task_id, completed_by=actor_id)
            await self._notifier.notify(
                reviewee_id,
                NotificationTypes.TASK_COMPLETED,
                f"{task.title} was marked as completed",
                task_id=task_id,
                chat_id=chat.id,
            )

        review_id = await self._reviews.create_review(
            task_id, actor_id, reviewee_id, rating, review_text
        )
        self._events.review_submitted(task_id, actor_id)
        await self._notifier.notify(
            reviewee_id,
            NotificationTypes.REVIEW_RECEIVED,
            f"You received a {rating}-star review",
            task_id=task_id,
            review_id=review_id,
        )

        return CompletionResult(task_id=task_id, review_id=review_id, reviewee_id=reviewee_id)
