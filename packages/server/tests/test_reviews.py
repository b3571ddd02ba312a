"""Tests for review creation and rating aggregation."""

import pytest
from structlog.testing import capture_logs

from taskmarket.core.errors import PreconditionFailed, StoreUnavailable
from taskmarket.core.store import where
from taskmarket.models import collections
from taskmarket.services.profiles import ensure_profile, get_profile
from taskmarket.services.reviews import ReviewService, aggregate, validate_rating


async def test_rating_is_mean_of_all_reviews(store):
    reviews = ReviewService(store)
    await reviews.create_review("t1", "r1", "user-u", 5, "Great")
    await reviews.create_review("t2", "r2", "user-u", 3, "Okay")

    await reviews.create_review("t3", "r3", "user-u", 4, "Good")

    profile = await get_profile(store, "user-u")
    assert profile.rating == pytest.approx(4.0)
    assert profile.rating_count == 3


async def test_duplicate_review_rejected(store):
    reviews = ReviewService(store)
    for task_id, rating in (("t1", 5), ("t2", 3), ("t3", 4)):
        await reviews.create_review(task_id, "reviewer", "user-u", rating)

    with pytest.raises(PreconditionFailed, match="duplicate review"):
        await reviews.create_review("t3", "reviewer", "user-u", 1)

    profile = await get_profile(store, "user-u")
    assert profile.rating == pytest.approx(4.0)
    assert profile.rating_count == 3
    rows = await store.query(collections.REVIEWS, where("task_id", "==", "t3"))
    assert len(rows) == 1


@pytest.mark.parametrize("rating", [0, 6, -1, 3.5, "4", True])
async def test_invalid_rating_writes_nothing(store, rating):
    with pytest.raises(PreconditionFailed):
        await ReviewService(store).create_review("t1", "r1", "user-u", rating)

    assert await store.query(collections.REVIEWS) == []
    assert await get_profile(store, "user-u") is None


async def test_cannot_review_yourself(store):
    with pytest.raises(PreconditionFailed, match="yourself"):
        await ReviewService(store).create_review("t1", "u1", "u1", 5)


async def test_rating_tracks_every_review(store):
    reviews = ReviewService(store)
    ratings = [5, 1, 4, 4, 2, 5, 3]
    for i, rating in enumerate(ratings):
        await reviews.create_review(f"task-{i}", f"reviewer-{i}", "user-u", rating)
        profile = await get_profile(store, "user-u")
        expected = ratings[: i + 1]
        assert profile.rating == pytest.approx(sum(expected) / len(expected))
        assert profile.rating_count == len(expected)


async def test_recompute_is_idempotent(store):
    reviews = ReviewService(store)
    await reviews.create_review("t1", "r1", "user-u", 2)
    await reviews.create_review("t2", "r2", "user-u", 5)

    first = await reviews.recompute_user_rating("user-u")
    second = await reviews.recompute_user_rating("user-u")
    assert first == second == (pytest.approx(3.5), 2)


async def test_recompute_without_reviews_leaves_profile(store):
    await ensure_profile(store, "user-u", "U")
    await store.update(collections.USER_PROFILES, "user-u", {"rating": 4.5, "rating_count": 2})

    assert await ReviewService(store).recompute_user_rating("user-u") is None

    profile = await get_profile(store, "user-u")
    assert profile.rating == 4.5
    assert profile.rating_count == 2


async def test_recompute_failure_keeps_review(store, monkeypatch):
    await ensure_profile(store, "user-u", "U")
    reviews = ReviewService(store)

    async def broken_update(collection, doc_id, partial):
        raise StoreUnavailable("Document store unavailable")

    monkeypatch.setattr(store, "update", broken_update)

    with capture_logs() as logs:
        review_id = await reviews.create_review("t1", "r1", "user-u", 5)

    assert await store.get(collections.REVIEWS, review_id) is not None
    assert (await get_profile(store, "user-u")).rating_count == 0
    failures = [e for e in logs if e["event"] == "reviews.rating_recompute_failed"]
    assert len(failures) == 1
    assert failures[0]["log_level"] == "warning"

    # A later recomputation heals the aggregate
    monkeypatch.undo()
    assert await reviews.recompute_user_rating("user-u") == (5.0, 1)


async def test_list_user_reviews_newest_first(store):
    reviews = ReviewService(store)
    await reviews.create_review("t1", "r1", "user-u", 5, "first")
    await reviews.create_review("t2", "r2", "user-u", 3, "second")
    await reviews.create_review("t3", "r3", "someone-else", 4)

    listed = await reviews.list_user_reviews("user-u")
    assert [r.content for r in listed] == ["second", "first"]
    assert await reviews.has_reviewed("t1", "r1")
    assert not await reviews.has_reviewed("t1", "r2")


def test_validate_rating_and_aggregate():
    assert validate_rating(1) == 1
    assert validate_rating(5) == 5
    assert aggregate([]) == (0.0, 0)
    assert aggregate([5, 3, 4]) == (4.0, 3)
