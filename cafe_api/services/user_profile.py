"""Account profile storage keyed by the authenticated user."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from cafe_api.adapters.storage.base import USERS_TABLE, AbstractKeyValueStore
from cafe_api.core.identity import AuthenticatedUser, user_identity
from cafe_api.schemas.user import UserPreferences, UserProfile

logger = logging.getLogger(__name__)

PROFILE_SORT_KEY = "profile"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfileService:
    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self._clock = clock

    async def get(self, user_id: str) -> UserProfile | None:
        item = await self.store.get(USERS_TABLE, (user_identity(user_id), PROFILE_SORT_KEY))
        return UserProfile.model_validate(item) if item is not None else None

    async def upsert(
        self,
        user: AuthenticatedUser,
        *,
        preferences: UserPreferences | None = None,
        created_at: str | None = None,
    ) -> UserProfile:
        """Create or refresh the profile from the token claims.

        ``created_at`` of an existing profile is never overwritten; the
        supplied value only seeds a new one. Omitted ``preferences`` keep the
        stored ones.
        """
        existing = await self.get(user.sub)
        now = self._clock().isoformat()
        if existing is not None:
            created_at = existing.created_at
            if preferences is None:
                preferences = existing.preferences

        profile = UserProfile(
            user_id=user.sub,
            email=user.email,
            name=user.name,
            picture=user.picture,
            created_at=created_at or now,
            updated_at=now,
            preferences=preferences,
        )
        await self.store.put(
            USERS_TABLE,
            (user_identity(user.sub), PROFILE_SORT_KEY),
            profile.model_dump(mode="json"),
        )
        logger.info("user_profile.saved", extra={"created": existing is None})
        return profile
