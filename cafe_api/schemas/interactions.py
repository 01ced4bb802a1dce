"""Pydantic schemas for place interactions (views/saves)."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from cafe_api.schemas.common import CamelModel
from cafe_api.schemas.search_state import Vibes

InteractionAction = Literal["view", "save", "unsave"]


class SearchContext(CamelModel):
    """The search that produced a place view."""

    destination: str
    vibes: Vibes = Field(default_factory=list)
    free_text: str | None = None
    origin_place_ids: list[str] = Field(default_factory=list)


class PlaceInteraction(CamelModel):
    """Per (identity, place, search context) interaction record."""

    identity: str
    place_id: str
    place_name: str
    context_fingerprint: str
    search_context: SearchContext
    viewed: bool = True
    saved: bool = False
    view_count: int = 1
    first_viewed_at: str
    last_viewed_at: str
    saved_at: str | None = None
    is_anonymous: bool = False


class PlaceInteractionRequest(CamelModel):
    action: InteractionAction
    place_id: str
    place_name: str | None = None
    search_context: SearchContext | None = None


class PlaceFilterResponse(CamelModel):
    place_ids_to_penalize: list[str]
