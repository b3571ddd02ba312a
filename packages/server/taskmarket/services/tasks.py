"""
Task service: creation, lookup and the monotonic status machine.

Status only advances open → matched → completed; ``assigned_user_id`` is set
once, on the open → matched transition (see ``ApplicationBinder``).
"""

from __future__ import annotations

from typing import Optional

import structlog

from taskmarket.core.errors import PreconditionFailed
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore, Snapshot, where
from taskmarket.models import collections
from taskmarket.services.profiles import ensure_profile
from taskmarket_shared.schemas.common import TaskStatus
from taskmarket_shared.schemas.tasks import TaskCreate, TaskRead

log = structlog.get_logger()

VALID_TRANSITIONS = {
    TaskStatus.OPEN: [TaskStatus.MATCHED],
    TaskStatus.MATCHED: [TaskStatus.COMPLETED],
    TaskStatus.COMPLETED: [],
}


def check_transition(current: TaskStatus, to_status: TaskStatus) -> None:
    allowed = VALID_TRANSITIONS.get(current, [])
    if to_status not in allowed:
        raise PreconditionFailed(
            f"Cannot transition from '{current.value}' to '{to_status.value}'. "
            f"Allowed: {[s.value for s in allowed]}",
            current=current.value,
            requested=to_status.value,
        )


def task_from_snapshot(snapshot: Snapshot) -> TaskRead:
    return TaskRead.model_validate(snapshot.to_dict())


class TaskService:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def create_task(
        self, creator_id: str, task_in: TaskCreate, creator_name: str = ""
    ) -> TaskRead:
        await ensure_profile(self._store, creator_id, creator_name)
        task_id = await self._store.add(
            collections.TASKS,
            {
                "title": task_in.title,
                "description": task_in.description,
                "category": task_in.category,
                "status": TaskStatus.OPEN.value,
                "creator_id": creator_id,
                "assigned_user_id": None,
                "matched_application_id": None,
                "location_shared": False,
                "location": task_in.location.model_dump(mode="json"),
                "created_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
                "completed_at": None,
            },
        )
        log.info("tasks.created", task_id=task_id, creator_id=creator_id)
        return await self.get_task(task_id)

    async def get_task(self, task_id: str) -> TaskRead:
        snapshot = await self._store.get_or_raise(collections.TASKS, task_id, "Task")
        return task_from_snapshot(snapshot)

    async def list_tasks(self, status: Optional[TaskStatus] = None) -> list[TaskRead]:
        """Tasks newest first, optionally filtered by status."""
        filters = [where("status", "==", status.value)] if status else []
        snapshots = await self._store.query(collections.TASKS, *filters)
        return [task_from_snapshot(s) for s in reversed(snapshots)]
