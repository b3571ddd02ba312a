"""
Change-stream projections.

Each projection is a pure ``snapshot -> view`` function plus a ``watch_*``
method that re-runs it over the full result set of a store subscription on
every change. The pure functions are usable on their own with synthetic data.
"""

from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog

from taskmarket.core.store import DocumentStore, Filter, Snapshot, where
from taskmarket.models import collections
from taskmarket_shared.schemas.chats import ChatRead, UnreadSummary
from taskmarket_shared.schemas.comments import CommentNode, CommentRead, CommentTree

log = structlog.get_logger()

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

ResultCallback = Callable[[Any], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Pure transforms
# ---------------------------------------------------------------------------


def _by_time(comment: CommentRead):
    return comment.timestamp or _EPOCH


def build_comment_tree(comments: Iterable[CommentRead]) -> CommentTree:
    """
    Two-level tree: root comments in ascending time, each with its replies in
    ascending time. A reply to a reply is attached to the root of its thread.

    Replies whose thread root is not in ``comments`` are returned in
    ``orphans`` rather than dropped.
    """
    comments = list(comments)
    by_id = {c.id: c for c in comments}

    def root_of(comment: CommentRead) -> Optional[str]:
        seen = set()
        current = comment
        while current.parent_id:
            if current.parent_id in seen:
                return None
            seen.add(current.parent_id)
            parent = by_id.get(current.parent_id)
            if parent is None:
                return None
            current = parent
        return current.id

    roots = {
        c.id: CommentNode(**c.model_dump())
        for c in sorted(comments, key=_by_time)
        if not c.parent_id
    }
    orphans = []
    for comment in comments:
        if not comment.parent_id:
            continue
        root_id = root_of(comment)
        if root_id is None:
            orphans.append(comment)
            continue
        roots[root_id].replies.append(comment)

    for node in roots.values():
        node.replies.sort(key=_by_time)
    if orphans:
        log.warning(
            "comments.missing_parent",
            count=len(orphans),
            parent_ids=sorted({c.parent_id for c in orphans}),
        )
    return CommentTree(roots=list(roots.values()), orphans=sorted(orphans, key=_by_time))


def is_chat_unread(chat: ChatRead, user_id: str) -> bool:
    if chat.last_message_timestamp is None:
        return False
    last_read = chat.last_read_by.get(user_id)
    return last_read is None or last_read < chat.last_message_timestamp


def unread_summary(chats: Iterable[ChatRead], user_id: str) -> UnreadSummary:
    unread = [c.id for c in chats if user_id in c.participants and is_chat_unread(c, user_id)]
    return UnreadSummary(count=len(unread), chat_ids=unread)


def sort_chats(chats: Iterable[ChatRead]) -> list[ChatRead]:
    """Most recently active first; chats without messages sort by creation."""
    return sorted(
        chats,
        key=lambda c: c.last_message_timestamp or c.created_at or _EPOCH,
        reverse=True,
    )


def bookmarked_ids(profile: Optional[Snapshot]) -> list[str]:
    if profile is None:
        return []
    return list(profile.get("bookmarked_tasks", []))


def comments_from_snapshots(snapshots: Iterable[Snapshot]) -> list[CommentRead]:
    return [CommentRead.model_validate(s.to_dict()) for s in snapshots]


def chats_from_snapshots(snapshots: Iterable[Snapshot]) -> list[ChatRead]:
    return [ChatRead.model_validate(s.to_dict()) for s in snapshots]


# ---------------------------------------------------------------------------
# Live projections
# ---------------------------------------------------------------------------


class Projections:
    def __init__(self, store: DocumentStore):
        self._store = store

    def watch(
        self,
        collection: str,
        filters: Iterable[Filter],
        transform: Callable[[list[Snapshot]], Any],
        on_result: ResultCallback,
    ) -> Callable[[], None]:
        """Subscribe and hand ``transform(snapshots)`` to ``on_result`` on every change."""

        async def deliver(snapshots: list[Snapshot]) -> None:
            result = on_result(transform(snapshots))
            if inspect.isawaitable(result):
                await result

        return self._store.subscribe(collection, filters, deliver)

    def watch_comment_tree(self, task_id: str, on_tree: ResultCallback) -> Callable[[], None]:
        return self.watch(
            collections.TASK_COMMENTS,
            [where("task_id", "==", task_id)],
            lambda snaps: build_comment_tree(comments_from_snapshots(snaps)),
            on_tree,
        )

    def watch_unread(self, user_id: str, on_summary: ResultCallback) -> Callable[[], None]:
        return self.watch(
            collections.CHATS,
            [where("participants", "array_contains", user_id)],
            lambda snaps: unread_summary(chats_from_snapshots(snaps), user_id),
            on_summary,
        )

    def watch_chats(self, user_id: str, on_chats: ResultCallback) -> Callable[[], None]:
        return self.watch(
            collections.CHATS,
            [where("participants", "array_contains", user_id)],
            lambda snaps: sort_chats(chats_from_snapshots(snaps)),
            on_chats,
        )

    def watch_bookmarks(self, user_id: str, on_ids: ResultCallback) -> Callable[[], None]:
        return self.watch(
            collections.USER_PROFILES,
            [where("user_id", "==", user_id)],
            lambda snaps: bookmarked_ids(snaps[0] if snaps else None),
            on_ids,
        )
