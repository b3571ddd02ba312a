"""
Public facade of the task collaboration protocol.

Every operation resolves the acting user from the auth context and returns an
``OperationResult``; service exceptions never reach the caller. Subscription
operations return the unsubscribe handle as the result value.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from taskmarket.core.auth import AuthContext, require_user
from taskmarket.core.errors import run_operation
from taskmarket.core.events import CollaborationEvents
from taskmarket.core.notifications import NotificationSink, StoreNotificationSink
from taskmarket.core.store import DocumentStore, where
from taskmarket.models import collections
from taskmarket.services.applications import ApplicationBinder
from taskmarket.services.bookmarks import BookmarkService
from taskmarket.services.comments import CommentService
from taskmarket.services.completion import CompletionEngine
from taskmarket.services.location import LocationNegotiation, negotiation_state
from taskmarket.services.messages import MessageStream, require_participant
from taskmarket.services.profiles import get_profile
from taskmarket.services.projections import Projections, chats_from_snapshots, unread_summary
from taskmarket.services.reviews import ReviewService
from taskmarket.services.tasks import TaskService
from taskmarket_shared.schemas.chats import LocationResponseResult
from taskmarket_shared.schemas.common import MessageType, TaskStatus
from taskmarket_shared.schemas.results import OperationResult
from taskmarket_shared.schemas.tasks import TaskCreate


class CollaborationService:
    def __init__(
        self,
        store: DocumentStore,
        auth: AuthContext,
        notifier: Optional[NotificationSink] = None,
        events: Optional[CollaborationEvents] = None,
        fallback_address: str = "No address provided",
    ):
        self.store = store
        self.auth = auth
        self.notifier = notifier or StoreNotificationSink(store)
        self.events = events or CollaborationEvents()

        self.tasks = TaskService(store)
        self.messages = MessageStream(store)
        self.location = LocationNegotiation(
            store, self.messages, self.tasks, fallback_address, self.notifier
        )
        self.applications = ApplicationBinder(store, self.tasks, self.messages, self.notifier)
        self.reviews = ReviewService(store)
        self.completion = CompletionEngine(
            store, self.tasks, self.messages, self.reviews, self.events, self.notifier
        )
        self.comments = CommentService(store, self.tasks)
        self.bookmarks = BookmarkService(store)
        self.projections = Projections(store)

    async def _call(
        self, name: str, operation: Callable[[str], Awaitable[Any]]
    ) -> OperationResult:
        async def run() -> Any:
            user_id = require_user(self.auth)
            return await operation(user_id)

        return await run_operation(name, run())

    # --- Tasks ---

    async def create_task(self, task_in: TaskCreate, creator_name: str = "") -> OperationResult:
        return await self._call(
            "create_task", lambda uid: self.tasks.create_task(uid, task_in, creator_name)
        )

    async def get_task(self, task_id: str) -> OperationResult:
        return await self._call("get_task", lambda uid: self.tasks.get_task(task_id))

    async def list_tasks(self, status: Optional[TaskStatus] = None) -> OperationResult:
        return await self._call("list_tasks", lambda uid: self.tasks.list_tasks(status))

    # --- Applications ---

    async def apply_for_task(
        self,
        task_id: str,
        message: str,
        applicant_name: str = "",
        task_title: Optional[str] = None,
        creator_id: Optional[str] = None,
        creator_name: Optional[str] = None,
    ) -> OperationResult:
        """Apply as the current user. Task details default to the stored task."""

        async def apply(uid: str):
            title, creator = task_title, creator_id
            if title is None or creator is None:
                task = await self.tasks.get_task(task_id)
                title = title if title is not None else task.title
                creator = creator or task.creator_id
            name = creator_name
            if name is None:
                profile = await get_profile(self.store, creator)
                name = profile.display_name if profile else ""
            return await self.applications.apply_for_task(
                task_id, title, creator, name, message, uid, applicant_name
            )

        return await self._call("apply_for_task", apply)

    async def accept_application(self, application_id: str) -> OperationResult:
        return await self._call(
            "accept_application",
            lambda uid: self.applications.accept_application(application_id, uid),
        )

    async def reject_application(self, application_id: str) -> OperationResult:
        return await self._call(
            "reject_application",
            lambda uid: self.applications.reject_application(application_id, uid),
        )

    async def list_applications(self, task_id: str) -> OperationResult:
        return await self._call(
            "list_applications",
            lambda uid: self.applications.list_task_applications(task_id, uid),
        )

    # --- Messages & location ---

    async def send_message(self, chat_id: str, content: str) -> OperationResult:
        return await self._call(
            "send_message",
            lambda uid: self.messages.append(chat_id, uid, MessageType.TEXT, {"content": content}),
        )

    async def list_messages(self, chat_id: str) -> OperationResult:
        async def load(uid: str):
            require_participant(await self.messages.get_chat(chat_id), uid)
            return await self.messages.list_messages(chat_id, viewer_id=uid)

        return await self._call("list_messages", load)

    async def mark_read(self, chat_id: str) -> OperationResult:
        return await self._call("mark_read", lambda uid: self.messages.mark_read(chat_id, uid))

    async def request_location(self, chat_id: str, content: str = "") -> OperationResult:
        return await self._call(
            "request_location", lambda uid: self.location.request(chat_id, uid, content)
        )

    async def respond_location(
        self, chat_id: str, approved: bool, task_id: str
    ) -> OperationResult:
        async def respond(uid: str) -> LocationResponseResult:
            shared = await self.location.respond(chat_id, uid, approved, task_id)
            return LocationResponseResult(shared=shared)

        return await self._call("respond_location", respond)

    async def location_state(self, chat_id: str) -> OperationResult:
        async def state(uid: str):
            require_participant(await self.messages.get_chat(chat_id), uid)
            return negotiation_state(await self.messages.list_messages(chat_id, viewer_id=uid))

        return await self._call("location_state", state)

    # --- Completion & reviews ---

    async def complete_task(
        self,
        task_id: str,
        rating: int,
        review_text: str = "",
        chat_id: Optional[str] = None,
    ) -> OperationResult:
        return await self._call(
            "complete_task",
            lambda uid: self.completion.complete_task(task_id, uid, rating, review_text, chat_id),
        )

    async def list_user_reviews(self, user_id: str) -> OperationResult:
        return await self._call(
            "list_user_reviews", lambda uid: self.reviews.list_user_reviews(user_id)
        )

    # --- Comments & bookmarks ---

    async def add_comment(
        self, task_id: str, content: str, parent_id: Optional[str] = None
    ) -> OperationResult:
        return await self._call(
            "add_comment",
            lambda uid: self.comments.add_comment(task_id, uid, content, parent_id),
        )

    async def comment_tree(self, task_id: str) -> OperationResult:
        return await self._call("comment_tree", lambda uid: self.comments.comment_tree(task_id))

    async def toggle_bookmark(self, task_id: str) -> OperationResult:
        return await self._call(
            "toggle_bookmark", lambda uid: self.bookmarks.toggle(uid, task_id)
        )

    async def list_bookmarks(self) -> OperationResult:
        return await self._call(
            "list_bookmarks", self.bookmarks.list_bookmarked_task_ids
        )

    async def unread_summary(self) -> OperationResult:
        async def summary(uid: str):
            chats = await self.store.query(
                collections.CHATS, where("participants", "array_contains", uid)
            )
            return unread_summary(chats_from_snapshots(chats), uid)

        return await self._call("unread_summary", summary)

    # --- Subscriptions ---

    async def subscribe_messages(self, chat_id: str, on_change) -> OperationResult:
        async def subscribe(uid: str):
            require_participant(await self.messages.get_chat(chat_id), uid)
            return self.messages.subscribe(chat_id, on_change, viewer_id=uid)

        return await self._call("subscribe_messages", subscribe)

    async def watch_comment_tree(self, task_id: str, on_tree) -> OperationResult:
        async def watch(uid: str):
            return self.projections.watch_comment_tree(task_id, on_tree)

        return await self._call("watch_comment_tree", watch)

    async def watch_unread(self, on_summary) -> OperationResult:
        async def watch(uid: str):
            return self.projections.watch_unread(uid, on_summary)

        return await self._call("watch_unread", watch)

    async def watch_chats(self, on_chats) -> OperationResult:
        async def watch(uid: str):
            return self.projections.watch_chats(uid, on_chats)

        return await self._call("watch_chats", watch)

    async def watch_bookmarks(self, on_ids) -> OperationResult:
        async def watch(uid: str):
            return self.projections.watch_bookmarks(uid, on_ids)

        return await self._call("watch_bookmarks", watch)
