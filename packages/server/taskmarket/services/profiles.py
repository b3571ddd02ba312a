"""User profile helpers (rating-bearing and bookmark-bearing documents)."""

from __future__ import annotations

from typing import Optional

from taskmarket.core.store import SERVER_TIMESTAMP, DocumentStore
from taskmarket.models import collections
from taskmarket_shared.schemas.reviews import UserProfileRead


async def get_profile(store: DocumentStore, user_id: str) -> Optional[UserProfileRead]:
    snapshot = await store.get(collections.USER_PROFILES, user_id)
    if snapshot is None:
        return None
    return UserProfileRead.model_validate(snapshot.to_dict())


async def ensure_profile(
    store: DocumentStore, user_id: str, display_name: str = ""
) -> UserProfileRead:
    """Return the user's profile, creating an empty one on first use."""
    profile = await get_profile(store, user_id)
    if profile is not None:
        if display_name and not profile.display_name:
            await store.update(
                collections.USER_PROFILES, user_id, {"display_name": display_name}
            )
            profile.display_name = display_name
        return profile

    await store.set(
        collections.USER_PROFILES,
        user_id,
        {
            # Duplicated into the body so change-stream filters can match on it
            "user_id": user_id,
            "display_name": display_name,
            "rating": 0.0,
            "rating_count": 0,
            "bookmarked_tasks": [],
            "created_at": SERVER_TIMESTAMP,
        },
    )
    return UserProfileRead(id=user_id, display_name=display_name)
