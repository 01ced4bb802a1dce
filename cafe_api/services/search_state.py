"""Search lifecycle tracking.

A search record is created ``pending`` when the client starts a search and
moves exactly once to a terminal state (``success`` or ``failed``). While the
user pages through results, pagination fields may still be patched.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from cafe_api.adapters.storage.base import SEARCH_STATES_TABLE, AbstractKeyValueStore
from cafe_api.core.errors import (
    InvalidTransitionAppError,
    NotFoundAppError,
    ValidationAppError,
)
from cafe_api.schemas.search_state import (
    FAILURE_STAGES,
    OriginPlace,
    SearchResultItem,
    SearchState,
    Vibes,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "results",
        "all_results",
        "shown_place_ids",
        "current_page",
        "has_more_pages",
        "next_page_token",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _results(items: Iterable[SearchResultItem | Mapping[str, Any]] | None) -> list[SearchResultItem]:
    return [SearchResultItem.model_validate(item) for item in items or []]


class SearchLifecycleTracker:
    """Persist and transition search lifecycle records.

    Args:
        store: Key-value store holding records under ``(identity, search_id)``.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self._clock = clock

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    async def _write(self, state: SearchState) -> SearchState:
        await self.store.put(
            SEARCH_STATES_TABLE,
            (state.identity, state.search_id),
            state.model_dump(mode="json"),
        )
        return state

    @staticmethod
    def _require(**fields: Any) -> None:
        missing = [name for name, value in fields.items() if value is None or value == ""]
        if missing:
            raise ValidationAppError(
                code="missing_fields",
                message=f"Missing required fields: {', '.join(missing)}",
                details={"missing_fields": missing},
            )

    async def initialize(
        self,
        identity: str,
        search_id: str,
        *,
        origin_places: Iterable[OriginPlace | Mapping[str, Any]] | None,
        destination: str | None,
        vibes: Vibes | None,
        free_text: str | None = None,
    ) -> SearchState:
        """Create (or restart) a ``pending`` record for a new search.

        Raises:
            ValidationAppError: If a required field is missing.
        """
        origin_list = list(origin_places) if origin_places is not None else None
        self._require(
            search_id=search_id,
            origin_places=origin_list or None,
            destination=destination,
            vibes=vibes,
        )

        now = self._now_iso()
        state = SearchState(
            identity=identity,
            search_id=search_id,
            origin_places=[OriginPlace.model_validate(p) for p in origin_list],
            destination=destination,
            vibes=vibes,
            free_text=free_text,
            status="pending",
            initiated_at=now,
            updated_at=now,
        )
        await self._write(state)
        logger.info(
            "search_state.initialized",
            extra={"search_id": search_id, "origin_count": len(state.origin_places)},
        )
        return state

    async def get(self, identity: str, search_id: str) -> SearchState:
        """Return the record for ``search_id`` owned by ``identity``.

        Raises:
            NotFoundAppError: If no such record exists.
        """
        item = await self.store.get(SEARCH_STATES_TABLE, (identity, search_id))
        if item is None:
            raise NotFoundAppError(
                code="search_state_not_found",
                message="Search state not found",
                details={"search_id": search_id},
            )
        return SearchState.model_validate(item)

    async def _get_pending(self, identity: str, search_id: str) -> SearchState:
        state = await self.get(identity, search_id)
        if state.status != "pending":
            raise InvalidTransitionAppError(
                code="search_already_completed",
                message=f"Search is already {state.status}",
                details={"search_id": search_id, "status": state.status},
            )
        return state

    async def mark_failed(
        self, identity: str, search_id: str, stage: str, message: str
    ) -> SearchState:
        """Move a pending search to ``failed``.

        Raises:
            ValidationAppError: Unknown failure stage.
            NotFoundAppError: Unknown search id.
            InvalidTransitionAppError: Search already terminal.
        """
        if stage not in FAILURE_STAGES:
            raise ValidationAppError(
                code="invalid_failure_stage",
                message=f"Invalid stage: {stage}",
                details={"allowed_values": list(FAILURE_STAGES)},
            )
        state = await self._get_pending(identity, search_id)

        now = self._now_iso()
        failed = state.model_copy(
            update={
                "status": "failed",
                "failure_stage": stage,
                "failure_message": message,
                "completed_at": now,
                "updated_at": now,
            }
        )
        await self._write(failed)
        logger.warning(
            "search_state.failed",
            extra={"search_id": search_id, "stage": stage},
        )
        return failed

    async def mark_successful(
        self,
        identity: str,
        search_id: str,
        *,
        results: Iterable[SearchResultItem | Mapping[str, Any]],
        all_results: Iterable[SearchResultItem | Mapping[str, Any]] | None = None,
        has_more_pages: bool = False,
        next_page_token: str | None = None,
    ) -> SearchState:
        """Move a pending search to ``success`` with its first page of results.

        ``all_results`` defaults to ``results``; the first page is recorded as
        shown.
        """
        state = await self._get_pending(identity, search_id)

        page = _results(results)
        everything = _results(all_results) if all_results is not None else list(page)
        now = self._now_iso()
        succeeded = state.model_copy(
            update={
                "status": "success",
                "results": page,
                "all_results": everything,
                "shown_place_ids": [item.place_id for item in page],
                "current_page": 0,
                "has_more_pages": has_more_pages,
                "next_page_token": next_page_token,
                "completed_at": now,
                "updated_at": now,
            }
        )
        await self._write(succeeded)
        logger.info(
            "search_state.succeeded",
            extra={"search_id": search_id, "result_count": len(page)},
        )
        return succeeded

    async def update(
        self, identity: str, search_id: str, fields: Mapping[str, Any]
    ) -> SearchState:
        """Patch pagination/result fields of an existing record.

        Keys may be camelCase or snake_case. Status and identity fields are not
        patchable.

        Raises:
            ValidationAppError: Empty patch, unknown field, or invalid value.
            NotFoundAppError: Unknown search id.
        """
        patch = {to_snake(key): value for key, value in fields.items()}
        if not patch:
            raise ValidationAppError(code="empty_update", message="No fields to update")
        rejected = sorted(set(patch) - UPDATABLE_FIELDS)
        if rejected:
            raise ValidationAppError(
                code="invalid_update_fields",
                message=f"Fields cannot be updated: {', '.join(rejected)}",
                details={"allowed_values": sorted(UPDATABLE_FIELDS)},
            )

        state = await self.get(identity, search_id)
        try:
            patched = SearchState.model_validate(
                {**state.model_dump(), **patch, "updated_at": self._now_iso()}
            )
        except ValidationError as exc:
            raise ValidationAppError(
                code="invalid_update_values",
                message="Invalid values in search state update",
                details={
                    "invalid_fields": sorted(
                        {str(error["loc"][0]) for error in exc.errors() if error.get("loc")}
                    )
                },
            ) from exc

        dumped = patched.model_dump(mode="json")
        stored = await self.store.update(
            SEARCH_STATES_TABLE,
            (identity, search_id),
            {name: dumped[name] for name in [*patch, "updated_at"]},
        )
        if stored is None:
            # Deleted between the read and the write
            raise NotFoundAppError(
                code="search_state_not_found",
                message="Search state not found",
                details={"search_id": search_id},
            )
        return SearchState.model_validate(stored)

    async def save(
        self,
        identity: str,
        search_id: str,
        *,
        origin_places: Iterable[OriginPlace | Mapping[str, Any]] | None,
        destination: str | None,
        vibes: Vibes | None,
        free_text: str | None = None,
        results: Iterable[SearchResultItem | Mapping[str, Any]] | None = None,
        all_results: Iterable[SearchResultItem | Mapping[str, Any]] | None = None,
        shown_place_ids: list[str] | None = None,
        current_page: int = 0,
        has_more_pages: bool = False,
        next_page_token: str | None = None,
    ) -> SearchState:
        """Replace the record with a complete ``success`` state."""
        origin_list = list(origin_places) if origin_places is not None else None
        self._require(
            search_id=search_id,
            origin_places=origin_list or None,
            destination=destination,
            vibes=vibes,
        )

        existing = await self.store.get(SEARCH_STATES_TABLE, (identity, search_id))
        now = self._now_iso()
        page = _results(results)
        state = SearchState(
            identity=identity,
            search_id=search_id,
            origin_places=[OriginPlace.model_validate(p) for p in origin_list],
            destination=destination,
            vibes=vibes,
            free_text=free_text,
            status="success",
            results=page,
            all_results=_results(all_results),
            shown_place_ids=(
                shown_place_ids
                if shown_place_ids is not None
                else [item.place_id for item in page]
            ),
            current_page=current_page,
            has_more_pages=has_more_pages,
            next_page_token=next_page_token,
            initiated_at=existing["initiated_at"] if existing else now,
            completed_at=now,
            updated_at=now,
        )
        await self._write(state)
        logger.info("search_state.saved", extra={"search_id": search_id})
        return state

    async def list_recent(self, identity: str, limit: int = 20) -> list[SearchState]:
        """Most recently started searches of ``identity``, newest first."""
        states = [
            SearchState.model_validate(item)
            for item in await self.store.query(SEARCH_STATES_TABLE, identity)
        ]
        states.sort(key=lambda state: state.initiated_at, reverse=True)
        return states[:limit]

    async def record_history(
        self,
        identity: str,
        *,
        origin_places: Iterable[OriginPlace | Mapping[str, Any]] | None,
        destination: str | None,
        vibes: Vibes | None,
        free_text: str | None = None,
        results: Iterable[SearchResultItem | Mapping[str, Any]] | None = None,
    ) -> SearchState:
        """Store an already finished search under a server-generated id."""
        search_id = f"{int(self._clock().timestamp() * 1000)}-{uuid.uuid4().hex[:7]}"
        return await self.save(
            identity,
            search_id,
            origin_places=origin_places,
            destination=destination,
            vibes=vibes,
            free_text=free_text,
            results=results,
        )
