"""Task comments. Stored flat; rendered through ``build_comment_tree``."""

from __future__ import annotations

from typing import Optional

import structlog

from taskmarket.core.errors import PreconditionFailed
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore, where
from taskmarket.models import collections
from taskmarket.services.projections import build_comment_tree, comments_from_snapshots
from taskmarket.services.tasks import TaskService
from taskmarket_shared.schemas.comments import CommentRead, CommentTree

log = structlog.get_logger()


class CommentService:
    def __init__(self, store: DocumentStore, tasks: TaskService):
        self._store = store
        self._tasks = tasks

    async def add_comment(
        self,
        task_id: str,
        author_id: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> CommentRead:
        content = content.strip()
        if not content:
            raise PreconditionFailed("Comment content is required")
        await self._tasks.get_task(task_id)

        if parent_id:
            parent = await self._store.get_or_raise(
                collections.TASK_COMMENTS, parent_id, "Parent comment"
            )
            if parent.get("task_id") != task_id:
                raise PreconditionFailed(
                    "Parent comment belongs to another task", parent_id=parent_id
                )

        comment_id = await self._store.add(
            collections.TASK_COMMENTS,
            {
                "task_id": task_id,
                "author_id": author_id,
                "content": content,
                "parent_id": parent_id,
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        log.info("comments.created", comment_id=comment_id, task_id=task_id, parent_id=parent_id)
        snapshot = await self._store.get_or_raise(collections.TASK_COMMENTS, comment_id, "Comment")
        return CommentRead.model_validate(snapshot.to_dict())

    async def list_comments(self, task_id: str) -> list[CommentRead]:
        snapshots = await self._store.query(
            collections.TASK_COMMENTS, where("task_id", "==", task_id)
        )
        return comments_from_snapshots(snapshots)

    async def comment_tree(self, task_id: str) -> CommentTree:
        return build_comment_tree(await self.list_comments(task_id))
