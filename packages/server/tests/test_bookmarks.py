"""Tests for bookmark toggling."""

import asyncio

from taskmarket.services.bookmarks import BookmarkService
from taskmarket.services.profiles import get_profile


async def test_toggle_round_trip(store):
    bookmarks = BookmarkService(store)

    assert await bookmarks.toggle("bob", "t1") is True
    assert await bookmarks.is_bookmarked("bob", "t1")
    assert await bookmarks.toggle("bob", "t2") is True
    assert await bookmarks.list_bookmarked_task_ids("bob") == ["t1", "t2"]

    assert await bookmarks.toggle("bob", "t1") is False
    assert await bookmarks.list_bookmarked_task_ids("bob") == ["t2"]


async def test_rapid_toggles_never_duplicate(store):
    bookmarks = BookmarkService(store)
    await asyncio.gather(*(bookmarks.toggle("bob", "t1") for _ in range(5)))

    profile = await get_profile(store, "bob")
    assert profile.bookmarked_tasks.count("t1") <= 1


async def test_unknown_user_has_no_bookmarks(store):
    bookmarks = BookmarkService(store)
    assert await bookmarks.list_bookmarked_task_ids("nobody") == []
    assert not await bookmarks.is_bookmarked("nobody", "t1")
