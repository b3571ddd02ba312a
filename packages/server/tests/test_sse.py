"""Tests for the SSE snapshot stream generator."""

import json

from taskmarket.core.sse import SnapshotQueue, snapshot_stream


class FakeRequest:
    def __init__(self, connected_polls: int):
        self._remaining = connected_polls

    async def is_disconnected(self) -> bool:
        self._remaining -= 1
        return self._remaining < 0


async def test_queue_keeps_only_newest():
    queue = SnapshotQueue()
    queue.put([1])
    queue.put([1, 2])
    assert await queue.get(timeout=0.1) == [1, 2]


async def test_stream_emits_snapshots_then_unsubscribes():
    queue = SnapshotQueue()
    queue.put(["a"])
    closed = []

    events = []
    async for item in snapshot_stream(
        FakeRequest(connected_polls=2),
        queue,
        lambda: closed.append(True),
        event="messages",
        encode=lambda value: value,
        heartbeat=0.01,
    ):
        events.append(item)

    assert events[0] == {"event": "messages", "id": "1", "data": json.dumps(["a"])}
    assert events[1] == ": heartbeat\n\n"
    assert closed == [True]
