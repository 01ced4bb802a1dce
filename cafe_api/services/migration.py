"""Anonymous-to-authenticated data migration.

When a caller signs in, the interaction records collected under their
address-derived identity (``ip:<hash>``) are re-keyed to ``user:<id>`` and the
address counter of the rate limiter is folded into the user's counter.

Both operations are guarded by markers in the migrations table, so a repeated
call (page reload, double submit) does nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from cafe_api.adapters.storage.base import (
    MIGRATIONS_TABLE,
    PLACE_INTERACTIONS_TABLE,
    AbstractKeyValueStore,
)
from cafe_api.core.errors import AppError, StorageAppError
from cafe_api.core.identity import hash_ip, ip_identity, user_identity
from cafe_api.schemas.interactions import PlaceInteraction
from cafe_api.services.place_interactions import (
    PlaceInteractionService,
    interaction_sort_key,
    merge_interactions,
)
from cafe_api.services.rate_limiter import RateLimiter, address_key

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MigrationResult:
    migrated_count: int = 0
    errors: list[str] = field(default_factory=list)
    already_migrated: bool = False


class AnonymousDataMigrator:
    """Move anonymous interaction and quota data onto a user identity.

    Args:
        store: Key-value store holding interactions and migration markers.
        interactions: Service that owns the interaction records.
        rate_limiter: Limiter whose counters are merged.
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        interactions: PlaceInteractionService,
        rate_limiter: RateLimiter,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.interactions = interactions
        self.rate_limiter = rate_limiter
        self._clock = clock

    async def _claim(self, address_hash: str, marker: str, **fields: object) -> bool:
        return await self.store.put_if_absent(
            MIGRATIONS_TABLE,
            (address_hash, marker),
            {"claimed_at": self._clock().isoformat(), **fields},
        )

    async def _release(self, address_hash: str, marker: str) -> None:
        try:
            await self.store.delete(MIGRATIONS_TABLE, (address_hash, marker))
        except StorageAppError as exc:
            logger.warning(
                "migration.release_failed",
                extra={"marker": marker.split("#", 1)[0], "error_code": exc.code},
            )

    async def _move_record(
        self, address_hash: str, user_id: str, source_identity: str, item: dict
    ) -> None:
        record = PlaceInteraction.model_validate(item)
        target_identity = user_identity(user_id)
        sort_key = interaction_sort_key(record.place_id, record.context_fingerprint)

        # Per-record marker: a source left behind by a failed delete is not merged twice
        record_marker = f"interactions#{user_id}#{sort_key}"
        applied = await self.store.get(MIGRATIONS_TABLE, (address_hash, record_marker))
        if applied is None or applied.get("last_viewed_at") != record.last_viewed_at:
            moved = record.model_copy(
                update={"identity": target_identity, "is_anonymous": False}
            )
            existing = await self.store.get(
                PLACE_INTERACTIONS_TABLE, (target_identity, sort_key)
            )
            if existing is not None:
                moved = merge_interactions(PlaceInteraction.model_validate(existing), moved)

            await self.interactions.write(moved)
            await self.store.put(
                MIGRATIONS_TABLE,
                (address_hash, record_marker),
                {
                    "claimed_at": self._clock().isoformat(),
                    "last_viewed_at": record.last_viewed_at,
                },
            )
        else:
            logger.info("migration.record_already_merged", extra={"place_id": record.place_id})

        await self.store.delete(PLACE_INTERACTIONS_TABLE, (source_identity, sort_key))

    async def migrate(self, address_hash: str, user_id: str) -> MigrationResult:
        """Re-key every interaction of ``ip:<address_hash>`` to ``user:<user_id>``.

        A record that already exists under the user for the same place and
        context is merged rather than duplicated. A failing record is reported
        in ``errors`` and left in place; the rest of the batch continues. When
        any record failed, or the batch could not be read, the marker is
        released so the call can be retried.

        Raises:
            StorageAppError: The source records could not be listed.
        """
        marker = f"interactions#{user_id}"
        if not await self._claim(address_hash, marker):
            logger.info("migration.already_applied", extra={"kind": "interactions"})
            return MigrationResult(already_migrated=True)

        source_identity = ip_identity(address_hash)
        result = MigrationResult()

        try:
            items = await self.store.query(PLACE_INTERACTIONS_TABLE, source_identity)
        except AppError:
            await self._release(address_hash, marker)
            raise

        for item in items:
            label = str(item.get("place_id", "<unknown>"))
            try:
                await self._move_record(address_hash, user_id, source_identity, item)
                result.migrated_count += 1
            except (AppError, ValidationError) as exc:
                logger.warning(
                    "migration.record_failed",
                    extra={"place_id": label, "error_type": type(exc).__name__},
                )
                result.errors.append(f"Failed to migrate {label}: {exc}")

        if result.errors:
            await self._release(address_hash, marker)

        logger.info(
            "migration.completed",
            extra={"migrated_count": result.migrated_count, "error_count": len(result.errors)},
        )
        return result

    async def merge_rate_limit_data(self, raw_address: str, user_id: str) -> bool:
        """Fold the address counter ``ip-<raw_address>`` into ``user:<user_id>``.

        The marker is scoped to the address counter's current window, so the
        same window is never added twice while a later window can still be.
        It is released again when the merge itself fails.

        Returns:
            True when counts were merged, False when there was nothing to merge
            or this window was merged before.
        """
        source_key = address_key(raw_address)
        snapshot = await self.rate_limiter.store.get(source_key)
        if snapshot is None or not snapshot.is_active(
            self.rate_limiter.now(), self.rate_limiter.window_seconds
        ):
            return False

        address_hash = hash_ip(raw_address)
        marker = f"rate_limit#{user_id}#{int(snapshot.window_start)}"
        if not await self._claim(address_hash, marker, count=snapshot.count):
            logger.info("migration.already_applied", extra={"kind": "rate_limit"})
            return False

        try:
            merged = await self.rate_limiter.merge_counters(source_key, user_identity(user_id))
        except AppError:
            await self._release(address_hash, marker)
            raise
        return merged is not None
