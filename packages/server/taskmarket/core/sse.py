"""
Server-sent event streams over store subscriptions.

A stream owns one subscription; each snapshot the subscription delivers is
queued and written to the client as one SSE event. Idle streams emit a
heartbeat comment so proxies keep the connection open.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator, Callable

import structlog
from starlette.requests import Request

log = structlog.get_logger()

HEARTBEAT_INTERVAL = 30  # seconds


class SnapshotQueue:
    """Callback target for a subscription; keeps only the newest undelivered snapshot."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)

    def put(self, snapshot: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(snapshot)

    async def get(self, timeout: float) -> Any:
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)


async def snapshot_stream(
    request: Request,
    queue: SnapshotQueue,
    unsubscribe: Callable[[], None],
    event: str,
    encode: Callable[[Any], Any],
    heartbeat: float = HEARTBEAT_INTERVAL,
) -> AsyncGenerator[dict | str, None]:
    """Yield one ``event`` per snapshot until the client disconnects."""
    sequence = 0
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                snapshot = await queue.get(timeout=heartbeat)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue

            sequence += 1
            yield {
                "event": event,
                "id": str(sequence),
                "data": json.dumps(encode(snapshot)),
            }
    except asyncio.CancelledError:
        log.info("sse.stream_cancelled", event=event)
    finally:
        unsubscribe()
