"""Bookmarked cafés, kept in step with the interaction records.

Saving a place here also marks its interaction records as saved, so the
seen-but-unsaved filter stops penalizing it. A place saved without ever being
viewed (e.g. from a shared link) has no interaction records, which is fine.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from cafe_api.adapters.storage.base import SAVED_PLACES_TABLE, AbstractKeyValueStore
from cafe_api.core.errors import ValidationAppError
from cafe_api.schemas.user import SavedPlace, SavePlaceRequest
from cafe_api.services.place_interactions import PlaceInteractionService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SavedPlacesService:
    """CRUD over ``(identity, place_id)`` saved-place records.

    Args:
        store: Key-value store.
        interactions: Interaction service updated on save/delete.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        interactions: PlaceInteractionService,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.interactions = interactions
        self._clock = clock

    async def list_for_identity(self, identity: str) -> list[SavedPlace]:
        """Saved places, most recently saved first."""
        places = [
            SavedPlace.model_validate(item)
            for item in await self.store.query(SAVED_PLACES_TABLE, identity)
        ]
        places.sort(key=lambda place: place.saved_at, reverse=True)
        return places

    async def save(self, identity: str, request: SavePlaceRequest) -> SavedPlace:
        place = SavedPlace(
            identity=identity,
            saved_at=self._clock().isoformat(),
            **request.model_dump(),
        )
        await self.store.put(
            SAVED_PLACES_TABLE, (identity, place.place_id), place.model_dump(mode="json")
        )
        await self._sync_interactions(identity, place.place_id, saved=True)
        logger.info("saved_place.saved", extra={"place_id": place.place_id})
        return place

    async def remove(self, identity: str, place_id: str) -> None:
        """Delete a saved place; deleting one that is not saved is a no-op."""
        await self.store.delete(SAVED_PLACES_TABLE, (identity, place_id))
        await self._sync_interactions(identity, place_id, saved=False)
        logger.info("saved_place.removed", extra={"place_id": place_id})

    async def _sync_interactions(self, identity: str, place_id: str, *, saved: bool) -> None:
        try:
            if saved:
                await self.interactions.mark_saved(identity, place_id)
            else:
                await self.interactions.mark_unsaved(identity, place_id)
        except ValidationAppError as exc:
            if exc.code != "place_not_viewed":
                raise
            logger.debug("saved_place.no_interactions", extra={"place_id": place_id})
