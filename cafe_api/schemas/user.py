"""Pydantic schemas for per-account data: profile, saved places, search history."""

from __future__ import annotations

from pydantic import Field

from cafe_api.schemas.common import CamelModel
from cafe_api.schemas.search_state import OriginPlace, SearchResultItem, SearchState, Vibes


class UserPreferences(CamelModel):
    default_vibes: list[str] | None = None
    default_radius: float | None = Field(None, gt=0, description="Search radius in km.")


class UserProfile(CamelModel):
    """Account record; identity claims come from the bearer token."""

    user_id: str
    email: str
    name: str | None = None
    picture: str | None = None
    created_at: str
    updated_at: str
    preferences: UserPreferences | None = None


class UpdateProfileRequest(CamelModel):
    created_at: str | None = Field(
        None, description="Only used when the profile does not exist yet."
    )
    preferences: UserPreferences | None = None


class ProfileResponse(CamelModel):
    user: UserProfile | None


class SaveProfileResponse(CamelModel):
    success: bool = True
    user: UserProfile


class SavedPlace(CamelModel):
    """A café bookmarked by the user."""

    identity: str
    place_id: str
    name: str
    address: str = ""
    rating: float | None = None
    price_level: int | None = None
    photo_url: str | None = None
    saved_at: str
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None


class SavePlaceRequest(CamelModel):
    place_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    address: str = ""
    rating: float | None = None
    price_level: int | None = None
    photo_url: str | None = None
    tags: list[str] = Field(default_factory=list, description="e.g. favorite, want-to-visit")
    notes: str | None = None


class SavedPlacesResponse(CamelModel):
    places: list[SavedPlace]


class SavePlaceResponse(CamelModel):
    success: bool = True
    place: SavedPlace


class SearchHistoryRequest(CamelModel):
    """A finished search recorded straight into history."""

    origin_places: list[OriginPlace]
    destination: str
    vibes: Vibes
    free_text: str | None = None
    results: list[SearchResultItem] = Field(default_factory=list)


class SearchHistoryResponse(CamelModel):
    history: list[SearchState]


class SaveSearchHistoryResponse(CamelModel):
    success: bool = True
    search_item: SearchState
