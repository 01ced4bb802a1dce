"""Per-account endpoints. All of them require a bearer token."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from cafe_api.api.dependencies import (
    get_profile_service,
    get_saved_places_service,
    get_search_tracker,
)
from cafe_api.core.identity import CallerContext, require_user
from cafe_api.schemas.common import SuccessResponse
from cafe_api.schemas.user import (
    ProfileResponse,
    SavedPlacesResponse,
    SavePlaceRequest,
    SavePlaceResponse,
    SaveProfileResponse,
    SaveSearchHistoryResponse,
    SearchHistoryRequest,
    SearchHistoryResponse,
    UpdateProfileRequest,
)
from cafe_api.services.saved_places import SavedPlacesService
from cafe_api.services.search_state import SearchLifecycleTracker
from cafe_api.services.user_profile import UserProfileService

router = APIRouter(prefix="/user", tags=["User"])

CurrentUser = Annotated[CallerContext, Depends(require_user)]


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    caller: CurrentUser,
    profiles: Annotated[UserProfileService, Depends(get_profile_service)],
) -> ProfileResponse:
    """Stored profile, or ``user: null`` before the first save."""
    return ProfileResponse(user=await profiles.get(caller.user.sub))


@router.post("/profile", response_model=SaveProfileResponse)
async def save_profile(
    body: UpdateProfileRequest,
    caller: CurrentUser,
    profiles: Annotated[UserProfileService, Depends(get_profile_service)],
) -> SaveProfileResponse:
    profile = await profiles.upsert(
        caller.user, preferences=body.preferences, created_at=body.created_at
    )
    return SaveProfileResponse(user=profile)


@router.get("/saved-places", response_model=SavedPlacesResponse)
async def list_saved_places(
    caller: CurrentUser,
    saved: Annotated[SavedPlacesService, Depends(get_saved_places_service)],
) -> SavedPlacesResponse:
    return SavedPlacesResponse(places=await saved.list_for_identity(caller.identity))


@router.post("/saved-places", response_model=SavePlaceResponse)
async def save_place(
    body: SavePlaceRequest,
    caller: CurrentUser,
    saved: Annotated[SavedPlacesService, Depends(get_saved_places_service)],
) -> SavePlaceResponse:
    """Bookmark a café and mark its interaction records as saved."""
    return SavePlaceResponse(place=await saved.save(caller.identity, body))


@router.delete("/saved-places", response_model=SuccessResponse)
async def delete_saved_place(
    caller: CurrentUser,
    saved: Annotated[SavedPlacesService, Depends(get_saved_places_service)],
    place_id: Annotated[str, Query(alias="placeId", min_length=1)],
) -> SuccessResponse:
    await saved.remove(caller.identity, place_id)
    return SuccessResponse()


@router.get("/search-history", response_model=SearchHistoryResponse)
async def get_search_history(
    caller: CurrentUser,
    tracker: Annotated[SearchLifecycleTracker, Depends(get_search_tracker)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> SearchHistoryResponse:
    """Newest searches first, any status."""
    return SearchHistoryResponse(history=await tracker.list_recent(caller.identity, limit))


@router.post("/search-history", response_model=SaveSearchHistoryResponse)
async def save_search_history(
    body: SearchHistoryRequest,
    caller: CurrentUser,
    tracker: Annotated[SearchLifecycleTracker, Depends(get_search_tracker)],
) -> SaveSearchHistoryResponse:
    state = await tracker.record_history(
        caller.identity,
        origin_places=body.origin_places,
        destination=body.destination,
        vibes=body.vibes,
        free_text=body.free_text,
        results=body.results,
    )
    return SaveSearchHistoryResponse(search_item=state)
