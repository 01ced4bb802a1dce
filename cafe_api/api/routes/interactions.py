from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from cafe_api.api.dependencies import get_interaction_service
from cafe_api.core.errors import AuthenticationAppError, ValidationAppError
from cafe_api.core.identity import CallerContext, get_caller
from cafe_api.schemas.common import SuccessResponse
from cafe_api.schemas.interactions import (
    PlaceFilterResponse,
    PlaceInteractionRequest,
    SearchContext,
)
from cafe_api.services.place_interactions import PlaceInteractionService

router = APIRouter(prefix="/user/place-interactions", tags=["Place interactions"])

Caller = Annotated[CallerContext, Depends(get_caller)]
Interactions = Annotated[PlaceInteractionService, Depends(get_interaction_service)]


def _json_param(name: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationAppError(
            code="invalid_query_param",
            message=f"Query parameter '{name}' must be JSON",
            details={"invalid_fields": [name]},
        ) from exc


@router.post("", response_model=SuccessResponse)
async def record_interaction(
    body: PlaceInteractionRequest, caller: Caller, interactions: Interactions
) -> SuccessResponse:
    """Record a view, save or unsave.

    Views work for anonymous callers too; saving requires sign-in.
    """
    if body.action == "view":
        missing = [
            name
            for name, value in (("placeName", body.place_name), ("searchContext", body.search_context))
            if not value
        ]
        if missing:
            raise ValidationAppError(
                code="missing_fields",
                message=f"Missing required fields for view: {', '.join(missing)}",
                details={"missing_fields": missing},
            )
        await interactions.record_view(
            caller.identity,
            body.place_id,
            body.place_name,
            body.search_context,
            is_anonymous=not caller.is_authenticated,
        )
        return SuccessResponse()

    if not caller.is_authenticated:
        raise AuthenticationAppError(
            code="unauthorized",
            message=f"Must be logged in to {body.action} places",
        )

    if body.action == "save":
        await interactions.mark_saved(caller.identity, body.place_id, body.search_context)
    else:
        await interactions.mark_unsaved(caller.identity, body.place_id, body.search_context)
    return SuccessResponse()


@router.get("/filter", response_model=PlaceFilterResponse)
async def filter_seen_places(
    caller: Caller,
    interactions: Interactions,
    destination: Annotated[str, Query(min_length=1)],
    vibes: Annotated[str, Query(description="JSON object of toggles or JSON array of names")],
    origin_place_ids: Annotated[str, Query(alias="originPlaceIds", description="JSON array")],
    free_text: Annotated[str | None, Query(alias="freeText")] = None,
) -> PlaceFilterResponse:
    """Place ids the caller viewed but did not save under an equivalent search."""
    try:
        context = SearchContext(
            destination=destination,
            vibes=_json_param("vibes", vibes),
            free_text=free_text or None,
            origin_place_ids=_json_param("originPlaceIds", origin_place_ids),
        )
    except ValidationError as exc:
        raise ValidationAppError(
            code="invalid_query_param",
            message="Invalid search context in query parameters",
            details={"invalid_fields": sorted({str(e["loc"][0]) for e in exc.errors() if e.get("loc")})},
        ) from exc

    place_ids = await interactions.get_seen_but_unsaved(caller.identity, context)
    return PlaceFilterResponse(place_ids_to_penalize=place_ids)
