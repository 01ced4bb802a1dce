from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from cafe_api.api.dependencies import get_search_tracker
from cafe_api.core.identity import CallerContext, get_caller
from cafe_api.schemas.common import SuccessResponse
from cafe_api.schemas.search_state import (
    FailSearchRequest,
    InitializeSearchRequest,
    InitializeSearchResponse,
    SaveSearchStateRequest,
    SearchStateResponse,
    SucceedSearchRequest,
    UpdateSearchStateRequest,
)
from cafe_api.services.search_state import SearchLifecycleTracker

router = APIRouter(prefix="/search-state", tags=["Search state"])

Caller = Annotated[CallerContext, Depends(get_caller)]
Tracker = Annotated[SearchLifecycleTracker, Depends(get_search_tracker)]


@router.post("/initialize", response_model=InitializeSearchResponse)
async def initialize_search(
    body: InitializeSearchRequest, caller: Caller, tracker: Tracker
) -> InitializeSearchResponse:
    """Start tracking a search as ``pending`` (called once the quota check passed)."""
    await tracker.initialize(
        caller.identity,
        body.search_id,
        origin_places=body.origin_places,
        destination=body.destination,
        vibes=body.vibes,
        free_text=body.free_text,
    )
    return InitializeSearchResponse(search_id=body.search_id)


@router.get("", response_model=SearchStateResponse)
async def get_search_state(
    caller: Caller,
    tracker: Tracker,
    search_id: Annotated[str, Query(alias="searchId", min_length=1)],
) -> SearchStateResponse:
    state = await tracker.get(caller.identity, search_id)
    return SearchStateResponse(search_state=state)


@router.post("", response_model=InitializeSearchResponse)
async def save_search_state(
    body: SaveSearchStateRequest, caller: Caller, tracker: Tracker
) -> InitializeSearchResponse:
    """Store a complete search state, replacing any existing record."""
    await tracker.save(
        caller.identity,
        body.search_id,
        origin_places=body.origin_places,
        destination=body.destination,
        vibes=body.vibes,
        free_text=body.free_text,
        results=body.results,
        all_results=body.all_results,
        shown_place_ids=body.shown_place_ids,
        current_page=body.current_page,
        has_more_pages=body.has_more_pages,
        next_page_token=body.next_page_token,
    )
    return InitializeSearchResponse(search_id=body.search_id)


@router.patch("", response_model=SuccessResponse)
async def update_search_state(
    body: UpdateSearchStateRequest, caller: Caller, tracker: Tracker
) -> SuccessResponse:
    await tracker.update(caller.identity, body.search_id, body.updates)
    return SuccessResponse()


@router.post("/fail", response_model=SuccessResponse)
async def fail_search(
    body: FailSearchRequest, caller: Caller, tracker: Tracker
) -> SuccessResponse:
    await tracker.mark_failed(caller.identity, body.search_id, body.stage, body.message)
    return SuccessResponse()


@router.post("/success", response_model=SuccessResponse)
async def succeed_search(
    body: SucceedSearchRequest, caller: Caller, tracker: Tracker
) -> SuccessResponse:
    await tracker.mark_successful(
        caller.identity,
        body.search_id,
        results=body.results,
        all_results=body.all_results,
        has_more_pages=body.has_more_pages,
        next_page_token=body.next_page_token,
    )
    return SuccessResponse()
