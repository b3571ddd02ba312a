"""
Application/chat binder.

Applying for a task binds the applicant to exactly one chat per task. The
chat lookup always runs before chat creation; this keeps one chat per
(task, applicant) for sequential callers but is not linearizable against
concurrent callers.
"""

from __future__ import annotations

from typing import Optional

import structlog

from taskmarket.core.errors import PreconditionFailed
from taskmarket.core.notifications import NotificationSink, NotificationTypes
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore, Snapshot, where
from taskmarket.models import collections
from taskmarket.services.messages import MessageStream
from taskmarket.services.profiles import ensure_profile
from taskmarket.services.tasks import TaskService, check_transition
from taskmarket_shared.schemas.common import ApplicationStatus, MessageType, TaskStatus
from taskmarket_shared.schemas.tasks import ApplicationRead, ApplyResult

log = structlog.get_logger()


def application_from_snapshot(snapshot: Snapshot) -> ApplicationRead:
    return ApplicationRead.model_validate(snapshot.to_dict())


class ApplicationBinder:
    def __init__(
        self,
        store: DocumentStore,
        tasks: TaskService,
        messages: MessageStream,
        notifier: NotificationSink,
    ):
        self._store = store
        self._tasks = tasks
        self._messages = messages
        self._notifier = notifier

    async def find_chat(self, task_id: str, applicant_id: str) -> Optional[str]:
        chats = await self._store.query(
            collections.CHATS,
            where("task_id", "==", task_id),
            where("applicant_id", "==", applicant_id),
        )
        # Oldest wins if a concurrent caller ever slipped a second one in
        return chats[0].id if chats else None

    async def _create_chat(
        self,
        task_id: str,
        task_title: str,
        creator_id: str,
        creator_name: str,
        applicant_id: str,
        applicant_name: str,
    ) -> str:
        chat_id = await self._store.add(
            collections.CHATS,
            {
                "task_id": task_id,
                "task_title": task_title,
                "participants": [creator_id, applicant_id],
                "participant_names": {creator_id: creator_name, applicant_id: applicant_name},
                "creator_id": creator_id,
                "applicant_id": applicant_id,
                "last_message": None,
                "last_message_timestamp": None,
                "last_read_by": {},
                "task_completed": False,
                "created_at": SERVER_TIMESTAMP,
            },
        )
        log.info("chats.created", chat_id=chat_id, task_id=task_id, applicant_id=applicant_id)
        return chat_id

    async def apply_for_task(
        self,
        task_id: str,
        task_title: str,
        creator_id: str,
        creator_name: str,
        message: str,
        applicant_id: str,
        applicant_name: str,
    ) -> ApplyResult:
        """Open (or reuse) the applicant's chat, record a pending application and
        post the application message into the chat."""
        message = message.strip()
        if not message:
            raise PreconditionFailed("An application message is required")

        task = await self._tasks.get_task(task_id)
        if task.creator_id != creator_id:
            raise PreconditionFailed("Task creator mismatch", task_id=task_id)
        if applicant_id == creator_id:
            raise PreconditionFailed("You cannot apply for your own task", task_id=task_id)
        if task.status != TaskStatus.OPEN:
            raise PreconditionFailed(
                "This task is no longer accepting applications",
                task_id=task_id,
                status=task.status.value,
            )

        chat_id = await self.find_chat(task_id, applicant_id)

        if chat_id is not None:
            previous = await self._store.query(
                collections.APPLICATIONS,
                where("task_id", "==", task_id),
                where("applicant_id", "==", applicant_id),
                where("status", "==", ApplicationStatus.PENDING.value),
            )
            for snapshot in previous:
                if snapshot.get("message") == message:
                    raise PreconditionFailed(
                        "You have already applied for this task",
                        chat_id=chat_id,
                        application_id=snapshot.id,
                    )
        else:
            chat_id = await self._create_chat(
                task_id, task_title or task.title, creator_id, creator_name,
                applicant_id, applicant_name,
            )

        await ensure_profile(self._store, applicant_id, applicant_name)

        application_id = await self._store.add(
            collections.APPLICATIONS,
            {
                "task_id": task_id,
                "applicant_id": applicant_id,
                "applicant_name": applicant_name,
                "message": message,
                "status": ApplicationStatus.PENDING.value,
                "chat_id": chat_id,
                "created_at": SERVER_TIMESTAMP,
            },
        )
        await self._messages.append(chat_id, applicant_id, MessageType.TEXT, {"content": message})

        log.info(
            "applications.created",
            application_id=application_id,
            task_id=task_id,
            chat_id=chat_id,
            applicant_id=applicant_id,
        )
        await self._notifier.notify(
            creator_id,
            NotificationTypes.APPLICATION_RECEIVED,
            f"{applicant_name or 'Someone'} applied for {task.title}",
            task_id=task_id,
            chat_id=chat_id,
            application_id=application_id,
        )
        return ApplyResult(chat_id=chat_id, application_id=application_id)

    async def get_application(self, application_id: str) -> ApplicationRead:
        snapshot = await self._store.get_or_raise(
            collections.APPLICATIONS, application_id, "Application"
        )
        return application_from_snapshot(snapshot)

    async def _load_for_decision(self, application_id: str, actor_id: str):
        application = await self.get_application(application_id)
        task = await self._tasks.get_task(application.task_id)
        if task.creator_id != actor_id:
            raise PreconditionFailed(
                "Only the task creator can decide on applications",
                application_id=application_id,
            )
        if application.status != ApplicationStatus.PENDING:
            raise PreconditionFailed(
                f"Application is already {application.status.value}",
                application_id=application_id,
            )
        return application, task

    async def accept_application(self, application_id: str, actor_id: str) -> ApplicationRead:
        """Match the task to this applicant and turn down the other pending ones."""
        application, task = await self._load_for_decision(application_id, actor_id)
        check_transition(task.status, TaskStatus.MATCHED)

        await self._store.update(
            collections.TASKS,
            task.id,
            {
                "status": TaskStatus.MATCHED.value,
                "assigned_user_id": application.applicant_id,
                "matched_application_id": application.id,
                "updated_at": SERVER_TIMESTAMP,
            },
        )
        await self._store.update(
            collections.APPLICATIONS,
            application.id,
            {"status": ApplicationStatus.ACCEPTED.value},
        )
        log.info(
            "applications.accepted",
            application_id=application.id,
            task_id=task.id,
            assigned_user_id=application.applicant_id,
        )

        if application.chat_id:
            await self._messages.send_system_message(
                application.chat_id, "The application was accepted. The task is now matched."
            )
        await self._notifier.notify(
            application.applicant_id,
            NotificationTypes.APPLICATION_ACCEPTED,
            f"Your application for {task.title} was accepted",
            task_id=task.id,
            chat_id=application.chat_id,
        )

        others = await self._store.query(
            collections.APPLICATIONS,
            where("task_id", "==", task.id),
            where("status", "==", ApplicationStatus.PENDING.value),
        )
        for snapshot in others:
            if snapshot.get("applicant_id") == application.applicant_id:
                # Same applicant, same chat: close it without a rejection notice
                await self._store.update(
                    collections.APPLICATIONS,
                    snapshot.id,
                    {"status": ApplicationStatus.REJECTED.value},
                )
                log.info(
                    "applications.superseded",
                    application_id=snapshot.id,
                    accepted_application_id=application.id,
                )
                continue
            await self._reject(application_from_snapshot(snapshot), task.title, assigned=True)

        return await self.get_application(application.id)

    async def reject_application(self, application_id: str, actor_id: str) -> ApplicationRead:
        application, task = await self._load_for_decision(application_id, actor_id)
        await self._reject(application, task.title, assigned=False)
        return await self.get_application(application.id)

    async def _reject(self, application: ApplicationRead, task_title: str, assigned: bool) -> None:
        await self._store.update(
            collections.APPLICATIONS,
            application.id,
            {"status": ApplicationStatus.REJECTED.value},
        )
        log.info(
            "applications.rejected",
            application_id=application.id,
            task_id=application.task_id,
            assigned_elsewhere=assigned,
        )
        text = (
            "This task has been assigned to another applicant."
            if assigned
            else "Your application was not accepted."
        )
        if application.chat_id:
            await self._messages.send_system_message(
                application.chat_id, text, visible_to=application.applicant_id
            )
        await self._notifier.notify(
            application.applicant_id,
            NotificationTypes.APPLICATION_REJECTED,
            f"{task_title}: {text}",
            task_id=application.task_id,
            chat_id=application.chat_id,
        )

    async def list_task_applications(
        self, task_id: str, actor_id: str
    ) -> list[ApplicationRead]:
        """The creator sees every application; anyone else only their own."""
        task = await self._tasks.get_task(task_id)
        filters = [where("task_id", "==", task_id)]
        if task.creator_id != actor_id:
            filters.append(where("applicant_id", "==", actor_id))
        snapshots = await self._store.query(collections.APPLICATIONS, *filters)
        return [application_from_snapshot(s) for s in snapshots]
