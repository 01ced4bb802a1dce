"""Pydantic schemas for the search lifecycle."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from cafe_api.schemas.common import CamelModel

SearchStatus = Literal["pending", "success", "failed"]

FAILURE_STAGES: tuple[str, ...] = (
    "rate_limit",
    "geocoding",
    "place_search",
    "ai_analysis",
    "unknown",
)

Vibes = dict[str, bool] | list[str]


class OriginPlace(CamelModel):
    """A café the user picked as the reference for the search."""

    place_id: str
    name: str


class SearchResultItem(CamelModel):
    """One matched café as shown to the user."""

    place_id: str
    name: str
    score: float
    photo_url: str | None = None
    reasoning: str | None = None
    matched_keywords: list[str] = Field(default_factory=list)
    distance_to_center: float | None = None
    image_analysis: str | None = None


class SearchState(CamelModel):
    """Lifecycle record of one user-initiated search."""

    identity: str
    search_id: str
    origin_places: list[OriginPlace]
    destination: str
    vibes: Vibes
    free_text: str | None = None
    status: SearchStatus = "pending"
    failure_stage: str | None = None
    failure_message: str | None = None
    results: list[SearchResultItem] = Field(default_factory=list)
    all_results: list[SearchResultItem] = Field(default_factory=list)
    shown_place_ids: list[str] = Field(default_factory=list)
    current_page: int = 0
    has_more_pages: bool = False
    next_page_token: str | None = None
    initiated_at: str
    completed_at: str | None = None
    updated_at: str


class InitializeSearchRequest(CamelModel):
    search_id: str = Field(..., description="Client-generated search identifier.")
    origin_places: list[OriginPlace]
    destination: str
    vibes: Vibes
    free_text: str | None = None


class SaveSearchStateRequest(InitializeSearchRequest):
    """Full replacement of a search record (stored as a completed search)."""

    results: list[SearchResultItem] = Field(default_factory=list)
    all_results: list[SearchResultItem] = Field(default_factory=list)
    shown_place_ids: list[str] | None = None
    current_page: int = 0
    has_more_pages: bool = False
    next_page_token: str | None = None


class UpdateSearchStateRequest(CamelModel):
    search_id: str
    updates: dict[str, Any] = Field(
        ...,
        description="Partial pagination/result fields (camelCase or snake_case keys).",
    )


class FailSearchRequest(CamelModel):
    search_id: str
    stage: str = Field(..., description=f"One of: {', '.join(FAILURE_STAGES)}")
    message: str


class SucceedSearchRequest(CamelModel):
    search_id: str
    results: list[SearchResultItem]
    all_results: list[SearchResultItem] | None = None
    has_more_pages: bool = False
    next_page_token: str | None = None


class InitializeSearchResponse(CamelModel):
    success: bool = True
    search_id: str


class SearchStateResponse(CamelModel):
    search_state: SearchState
