"""
Notification sink for user-facing outcomes.

Notifications are stored as documents so clients can render them as toasts
or in a notification list through a change-stream subscription.
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from taskmarket.core.errors import CollaborationError
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore
from taskmarket.models import collections

log = structlog.get_logger()


class NotificationTypes:
    APPLICATION_RECEIVED = "application_received"
    APPLICATION_ACCEPTED = "application_accepted"
    APPLICATION_REJECTED = "application_rejected"
    LOCATION_SHARED = "location_shared"
    TASK_COMPLETED = "task_completed"
    REVIEW_RECEIVED = "review_received"


class NotificationSink(Protocol):
    async def notify(self, user_id: str, type: str, message: str, **data: Any) -> None: ...


class StoreNotificationSink:
    """Writes notifications into the ``notifications`` collection."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def notify(self, user_id: str, type: str, message: str, **data: Any) -> None:
        # Notifications are side-effects; a failure here never fails the caller
        try:
            await self._store.add(
                collections.NOTIFICATIONS,
                {
                    "user_id": user_id,
                    "type": type,
                    "message": message,
                    "data": data,
                    "read": False,
                    "created_at": SERVER_TIMESTAMP,
                },
            )
        except CollaborationError as exc:
            log.warning(
                "notifications.write_failed",
                user_id=user_id,
                type=type,
                error=exc.message,
            )


class LogNotificationSink:
    """Sink that only logs; used where no store-backed inbox is wanted."""

    async def notify(self, user_id: str, type: str, message: str, **data: Any) -> None:
        log.info("notifications.sent", user_id=user_id, type=type, message=message, **data)
