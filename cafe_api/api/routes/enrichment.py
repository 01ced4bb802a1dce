"""Best-effort enrichment endpoints.

Once the request body validates these always answer 200; upstream failures
degrade to empty or generic payloads.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from cafe_api.api.dependencies import (
    get_image_service,
    get_reasoning_service,
    get_social_service,
)
from cafe_api.schemas.enrichment import (
    AnalyzeImageRequest,
    AnalyzeImageResponse,
    ReasonBatchRequest,
    ReasonBatchResponse,
    SocialMentionsRequest,
    SocialMentionsResponse,
)
from cafe_api.services.image_analysis import ImageAnalysisService
from cafe_api.services.match_reasoning import MatchReasoningService
from cafe_api.services.social_mentions import SocialMentionsService

router = APIRouter(tags=["Enrichment"])


@router.post("/analyze-image", response_model=AnalyzeImageResponse)
async def analyze_image(
    body: AnalyzeImageRequest,
    service: Annotated[ImageAnalysisService, Depends(get_image_service)],
) -> AnalyzeImageResponse:
    return AnalyzeImageResponse(analysis=await service.analyze(body.image_url))


@router.post("/social-mentions", response_model=SocialMentionsResponse)
async def social_mentions(
    body: SocialMentionsRequest,
    service: Annotated[SocialMentionsService, Depends(get_social_service)],
) -> SocialMentionsResponse:
    return await service.fetch(body.cafe_name, body.city)


@router.post("/reason-batch", response_model=ReasonBatchResponse)
async def reason_batch(
    body: ReasonBatchRequest,
    service: Annotated[MatchReasoningService, Depends(get_reasoning_service)],
) -> ReasonBatchResponse:
    reasonings = await service.reason_batch(
        body.source, body.candidates, city=body.city, vibes=body.vibes
    )
    return ReasonBatchResponse(reasonings=reasonings)
