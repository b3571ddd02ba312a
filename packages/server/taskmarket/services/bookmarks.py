"""Bookmarks live in an array on the user's profile."""

from __future__ import annotations

import structlog

from taskmarket.core.store import DocumentStore, array_remove, array_union
from taskmarket.models import collections
from taskmarket.services.profiles import ensure_profile
from taskmarket.services.projections import bookmarked_ids

log = structlog.get_logger()


class BookmarkService:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def is_bookmarked(self, user_id: str, task_id: str) -> bool:
        return task_id in await self.list_bookmarked_task_ids(user_id)

    async def list_bookmarked_task_ids(self, user_id: str) -> list[str]:
        return bookmarked_ids(await self._store.get(collections.USER_PROFILES, user_id))

    async def toggle(self, user_id: str, task_id: str) -> bool:
        """Flip membership of ``task_id``. Returns the new state.

        Reads the current membership and then adds or removes the id as a set
        operation, so rapid double toggles never leave duplicates.
        """
        await ensure_profile(self._store, user_id)
        bookmarked = await self.is_bookmarked(user_id, task_id)
        edit = array_remove(task_id) if bookmarked else array_union(task_id)
        await self._store.update(
            collections.USER_PROFILES, user_id, {"bookmarked_tasks": edit}
        )
        log.info("bookmarks.toggled", user_id=user_id, task_id=task_id, bookmarked=not bookmarked)
        return not bookmarked
