"""Pydantic schemas for the cache-fronted enrichment endpoints."""

from __future__ import annotations

from pydantic import Field

from cafe_api.schemas.common import CamelModel
from cafe_api.schemas.search_state import Vibes


class AnalyzeImageRequest(CamelModel):
    image_url: str = Field(..., min_length=1)


class AnalyzeImageResponse(CamelModel):
    analysis: str = Field(
        "", description="Comma-separated style descriptors; empty when analysis failed."
    )


class SocialPost(CamelModel):
    title: str
    body: str = ""
    score: int = 0
    author: str | None = None
    created_utc: float = 0
    permalink: str
    subreddit: str | None = None


class SocialMentionsRequest(CamelModel):
    cafe_name: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)


class SocialMentionsResponse(CamelModel):
    posts: list[SocialPost] = Field(default_factory=list)
    total_mentions: int = 0
    average_score: float = 0


class CafeSummary(CamelModel):
    """Place data the reasoning prompt draws on."""

    name: str
    rating: float | None = None
    user_ratings_total: int | None = None
    price_level: int | None = None
    editorial_summary: str | None = None
    image_analysis: str | None = None
    keywords: list[str] = Field(default_factory=list)
    social_mentions: SocialMentionsResponse | None = None


class ReasonBatchRequest(CamelModel):
    source: CafeSummary
    candidates: list[CafeSummary] = Field(..., min_length=1)
    city: str | None = None
    vibes: Vibes | None = None


class ReasonBatchResponse(CamelModel):
    reasonings: list[str]
