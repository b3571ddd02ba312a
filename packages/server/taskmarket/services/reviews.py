"""
Reviews and aggregate ratings.

A user's ``rating``/``rating_count`` is derived state: it is recomputed in full
from every review of that user after each review write. A failed
recomputation leaves the review in place and is logged; the next successful
recomputation corrects the aggregate.
"""

from __future__ import annotations

from typing import Optional

import structlog

from taskmarket.core.errors import DerivedStateStale, PreconditionFailed, StoreUnavailable
from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore, where
from taskmarket.models import collections
from taskmarket_shared.schemas.reviews import ReviewRead

log = structlog.get_logger()

MIN_RATING = 1
MAX_RATING = 5


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise PreconditionFailed("Rating must be a whole number", rating=rating)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise PreconditionFailed(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}", rating=rating
        )
    return rating


def aggregate(ratings: list[int]) -> tuple[float, int]:
    """Mean and count of ``ratings``; (0.0, 0) when empty."""
    if not ratings:
        return 0.0, 0
    return sum(ratings) / len(ratings), len(ratings)


class ReviewService:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def has_reviewed(self, task_id: str, reviewer_id: str) -> bool:
        existing = await self._store.query(
            collections.REVIEWS,
            where("task_id", "==", task_id),
            where("reviewer_id", "==", reviewer_id),
        )
        return bool(existing)

    async def ensure_can_review(
        self, task_id: str, reviewer_id: str, reviewee_id: str, rating
    ) -> None:
        """Every check ``create_review`` makes before writing."""
        if await self.has_reviewed(task_id, reviewer_id):
            raise PreconditionFailed(
                "duplicate review", task_id=task_id, reviewer_id=reviewer_id
            )
        validate_rating(rating)
        if reviewer_id == reviewee_id:
            raise PreconditionFailed("You cannot review yourself", task_id=task_id)

    async def create_review(
        self,
        task_id: str,
        reviewer_id: str,
        reviewee_id: str,
        rating: int,
        content: str = "",
    ) -> str:
        await self.ensure_can_review(task_id, reviewer_id, reviewee_id, rating)

        review_id = await self._store.add(
            collections.REVIEWS,
            {
                "task_id": task_id,
                "reviewer_id": reviewer_id,
                "user_id": reviewee_id,
                "rating": rating,
                "content": content.strip(),
                "created_at": SERVER_TIMESTAMP,
            },
        )
        log.info(
            "reviews.created",
            review_id=review_id,
            task_id=task_id,
            reviewer_id=reviewer_id,
            user_id=reviewee_id,
            rating=rating,
        )

        await self.refresh_rating(reviewee_id)
        return review_id

    async def recompute_user_rating(self, user_id: str) -> Optional[tuple[float, int]]:
        """
        Rewrite ``rating`` and ``rating_count`` on the user's profile from all of
        their reviews. Returns the new (rating, count), or None when the user has
        no reviews (the profile is left untouched).

        Raises DerivedStateStale if the store fails part-way.
        """
        try:
            reviews = await self._store.query(
                collections.REVIEWS, where("user_id", "==", user_id)
            )
            if not reviews:
                return None

            rating, count = aggregate([int(r.get("rating")) for r in reviews])
            fields = {"rating": rating, "rating_count": count, "updated_at": SERVER_TIMESTAMP}

            if await self._store.get(collections.USER_PROFILES, user_id) is None:
                await self._store.set(
                    collections.USER_PROFILES,
                    user_id,
                    {"user_id": user_id, "display_name": "", "bookmarked_tasks": [], **fields},
                )
            else:
                await self._store.update(collections.USER_PROFILES, user_id, fields)
        except StoreUnavailable as exc:
            raise DerivedStateStale(
                "Rating recomputation failed", user_id=user_id, reason=exc.message
            ) from exc

        log.info("reviews.rating_recomputed", user_id=user_id, rating=rating, rating_count=count)
        return rating, count

    async def refresh_rating(self, user_id: str) -> None:
        try:
            await self.recompute_user_rating(user_id)
        except DerivedStateStale as exc:
            log.warning(
                "reviews.rating_recompute_failed",
                user_id=user_id,
                error=exc.message,
                reason=exc.details.get("reason"),
            )

    async def list_user_reviews(self, user_id: str) -> list[ReviewRead]:
        snapshots = await self._store.query(
            collections.REVIEWS, where("user_id", "==", user_id)
        )
        # Newest first
        return [ReviewRead.model_validate(s.to_dict()) for s in reversed(snapshots)]
