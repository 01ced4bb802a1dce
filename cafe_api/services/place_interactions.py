"""Place view/save tracking per identity and search context.

A record is keyed by ``(identity, "<place_id>#<context fingerprint>")`` so the
same place seen under two different searches is tracked separately. Later
searches with an equivalent context deprioritize places that were viewed but
never saved.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from cafe_api.adapters.storage.base import PLACE_INTERACTIONS_TABLE, AbstractKeyValueStore
from cafe_api.core.errors import ValidationAppError
from cafe_api.schemas.interactions import PlaceInteraction, SearchContext
from cafe_api.utils.fingerprint import search_context_fingerprint

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def context_fingerprint(context: SearchContext) -> str:
    return search_context_fingerprint(
        context.destination,
        context.vibes,
        context.free_text,
        context.origin_place_ids,
    )


def interaction_sort_key(place_id: str, fingerprint: str) -> str:
    return f"{place_id}#{fingerprint}"


def merge_interactions(existing: PlaceInteraction, incoming: PlaceInteraction) -> PlaceInteraction:
    """Combine two records for the same place and context.

    View counts add up, the view time span widens to cover both, and a place
    saved in either record stays saved. The result keeps ``existing``'s identity.
    """
    saved_times = [t for t in (existing.saved_at, incoming.saved_at) if t]
    return existing.model_copy(
        update={
            "viewed": existing.viewed or incoming.viewed,
            "saved": existing.saved or incoming.saved,
            "view_count": existing.view_count + incoming.view_count,
            "first_viewed_at": min(existing.first_viewed_at, incoming.first_viewed_at),
            "last_viewed_at": max(existing.last_viewed_at, incoming.last_viewed_at),
            "saved_at": min(saved_times) if saved_times else None,
            "is_anonymous": existing.is_anonymous and incoming.is_anonymous,
        }
    )


class PlaceInteractionService:
    """Record views and saves, and answer the seen-but-unsaved filter query."""

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self._clock = clock

    async def list_for_identity(self, identity: str) -> list[PlaceInteraction]:
        items = await self.store.query(PLACE_INTERACTIONS_TABLE, identity)
        return [PlaceInteraction.model_validate(item) for item in items]

    async def write(self, interaction: PlaceInteraction) -> None:
        await self.store.put(
            PLACE_INTERACTIONS_TABLE,
            (
                interaction.identity,
                interaction_sort_key(interaction.place_id, interaction.context_fingerprint),
            ),
            interaction.model_dump(mode="json"),
        )

    async def record_view(
        self,
        identity: str,
        place_id: str,
        place_name: str,
        search_context: SearchContext,
        *,
        is_anonymous: bool = False,
    ) -> PlaceInteraction:
        """Record that ``identity`` was shown ``place_id`` under ``search_context``.

        Repeated views under the same context increment ``view_count``. The
        count is best-effort: two concurrent views of the same record may be
        counted once. A record that vanishes between the read and the write
        is recreated as a first view.
        """
        fingerprint = context_fingerprint(search_context)
        key = (identity, interaction_sort_key(place_id, fingerprint))
        now = self._clock().isoformat()

        fresh = PlaceInteraction(
            identity=identity,
            place_id=place_id,
            place_name=place_name,
            context_fingerprint=fingerprint,
            search_context=search_context,
            first_viewed_at=now,
            last_viewed_at=now,
            is_anonymous=is_anonymous,
        )
        if await self.store.put_if_absent(
            PLACE_INTERACTIONS_TABLE, key, fresh.model_dump(mode="json")
        ):
            logger.debug("place_interaction.first_view", extra={"place_id": place_id})
            return fresh

        item = await self.store.get(PLACE_INTERACTIONS_TABLE, key)
        if item is None:
            await self.write(fresh)
            return fresh

        existing = PlaceInteraction.model_validate(item)
        updated = await self.store.update(
            PLACE_INTERACTIONS_TABLE,
            key,
            {
                "viewed": True,
                "place_name": place_name,
                "view_count": existing.view_count + 1,
                "last_viewed_at": now,
            },
        )
        if updated is None:
            await self.write(fresh)
            return fresh
        return PlaceInteraction.model_validate(updated)

    async def _set_saved(
        self,
        identity: str,
        place_id: str,
        search_context: SearchContext | None,
        saved: bool,
    ) -> int:
        records = [
            record
            for record in await self.list_for_identity(identity)
            if record.place_id == place_id and record.viewed
        ]
        if search_context is not None:
            fingerprint = context_fingerprint(search_context)
            records = [r for r in records if r.context_fingerprint == fingerprint]
        if not records:
            raise ValidationAppError(
                code="place_not_viewed",
                message="Place must be viewed before it can be saved or unsaved",
                details={"place_id": place_id},
            )

        saved_at = self._clock().isoformat() if saved else None
        for record in records:
            await self.store.update(
                PLACE_INTERACTIONS_TABLE,
                (identity, interaction_sort_key(place_id, record.context_fingerprint)),
                {"saved": saved, "saved_at": saved_at},
            )
        return len(records)

    async def mark_saved(
        self,
        identity: str,
        place_id: str,
        search_context: SearchContext | None = None,
    ) -> int:
        """Mark a viewed place as saved.

        Without a ``search_context`` every context the place was viewed under
        is marked.

        Returns:
            Number of records updated.

        Raises:
            ValidationAppError: The place was never viewed by ``identity``.
        """
        updated = await self._set_saved(identity, place_id, search_context, True)
        logger.info("place_interaction.saved", extra={"place_id": place_id, "records": updated})
        return updated

    async def mark_unsaved(
        self,
        identity: str,
        place_id: str,
        search_context: SearchContext | None = None,
    ) -> int:
        updated = await self._set_saved(identity, place_id, search_context, False)
        logger.info("place_interaction.unsaved", extra={"place_id": place_id, "records": updated})
        return updated

    async def get_seen_but_unsaved(
        self, identity: str, search_context: SearchContext
    ) -> list[str]:
        """Place ids viewed but not saved under an equivalent search context."""
        fingerprint = context_fingerprint(search_context)
        place_ids: list[str] = []
        for record in await self.list_for_identity(identity):
            if (
                record.context_fingerprint == fingerprint
                and record.viewed
                and not record.saved
                and record.place_id not in place_ids
            ):
                place_ids.append(record.place_id)
        return place_ids
