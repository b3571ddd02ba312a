"""
In-process collaboration event channel.

Open chat views register listeners so they can reflect "review submitted"
without reloading. Listeners are plain callables; a failing listener is
logged and does not affect the others.
"""

from __future__ import annotations

from typing import Callable

import structlog

log = structlog.get_logger()

ReviewListener = Callable[[str, str], None]


class CollaborationEvents:
    def __init__(self) -> None:
        self._review_listeners: list[ReviewListener] = []

    def on_review_submitted(self, listener: ReviewListener) -> Callable[[], None]:
        """Register ``listener(task_id, reviewer_id)``. Returns an unsubscribe handle."""
        self._review_listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._review_listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def review_submitted(self, task_id: str, reviewer_id: str) -> None:
        for listener in list(self._review_listeners):
            try:
                listener(task_id, reviewer_id)
            except Exception:
                log.exception(
                    "events.listener_failed",
                    event="review.submitted",
                    task_id=task_id,
                )

    @property
    def listener_count(self) -> int:
        return len(self._review_listeners)
