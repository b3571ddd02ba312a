"""
In-process change feed.

Every write to a collection marks the subscriptions on that collection dirty.
Each subscription owns one task that re-fetches the full result set and hands
it to its callback, so deliveries for one subscription never overlap and
follow commit order. Several notifications that arrive while a refresh is in
flight collapse into a single follow-up refresh.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

import structlog

from taskmarket.core.errors import CollaborationError

log = structlog.get_logger()

SnapshotCallback = Callable[[Any], Union[None, Awaitable[None]]]


class Subscription:
    """A live query: re-runs ``fetch`` and calls ``callback`` on every change."""

    def __init__(
        self,
        collection: str,
        fetch: Callable[[], Awaitable[Any]],
        callback: SnapshotCallback,
    ) -> None:
        self.collection = collection
        self._fetch = fetch
        self._callback = callback
        self._dirty = asyncio.Event()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        # The first delivery is the current snapshot
        self._dirty.set()
        self._task = asyncio.create_task(self._run())

    def notify(self) -> None:
        self._dirty.set()

    def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        try:
            while True:
                await self._dirty.wait()
                self._dirty.clear()
                try:
                    snapshot = await self._fetch()
                except CollaborationError as exc:
                    log.warning(
                        "feed.refresh_failed",
                        collection=self.collection,
                        error=exc.message,
                    )
                    continue

                try:
                    result = self._callback(snapshot)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    log.exception("feed.callback_failed", collection=self.collection)
        except asyncio.CancelledError:
            log.debug("feed.subscription_cancelled", collection=self.collection)


class ChangeFeed:
    """Routes collection change notices to the subscriptions listening on them."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    def register(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.collection].append(subscription)

    def unregister(self, subscription: Subscription) -> None:
        try:
            self._subscriptions[subscription.collection].remove(subscription)
        except ValueError:
            pass

    def publish(self, collection: str) -> None:
        for subscription in list(self._subscriptions.get(collection, ())):
            subscription.notify()

    def active_count(self, collection: str | None = None) -> int:
        if collection is not None:
            return len(self._subscriptions.get(collection, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def close(self) -> None:
        for subs in self._subscriptions.values():
            for subscription in subs:
                subscription.cancel()
        self._subscriptions.clear()
