"""Community mentions of a café.

Searches run concurrently: two site-wide queries plus one query per coffee
community. Any single subrequest may fail without affecting the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from cafe_api.adapters.social.base import AbstractSocialSearchClient
from cafe_api.core.errors import UpstreamAppError
from cafe_api.schemas.enrichment import SocialMentionsResponse, SocialPost
from cafe_api.utils.fingerprint import cafe_city_fingerprint
from cafe_api.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

GLOBAL_QUERY_LIMIT = 10
COMMUNITY_QUERY_LIMIT = 5
TOP_POSTS = 10
SCORE_WEIGHT = 0.7
RECENCY_WEIGHT = 0.3


def rank_key(post: SocialPost) -> float:
    """Blend of votes and recency; higher ranks first."""
    return post.score * SCORE_WEIGHT + post.created_utc * RECENCY_WEIGHT / 1_000_000


def summarize(posts: list[SocialPost]) -> SocialMentionsResponse:
    """Top posts by rank plus totals over every collected post."""
    ranked = sorted(posts, key=rank_key, reverse=True)
    average = sum(p.score for p in posts) / len(posts) if posts else 0
    return SocialMentionsResponse(
        posts=ranked[:TOP_POSTS],
        total_mentions=len(posts),
        average_score=average,
    )


class SocialMentionsService:
    """Fetch, rank and cache café mentions from the social search client."""

    def __init__(
        self,
        client: AbstractSocialSearchClient,
        cache: TTLCache[SocialMentionsResponse],
        communities: Iterable[str],
    ) -> None:
        self.client = client
        self.cache = cache
        self.communities = list(communities)

    async def _safe_search(
        self, query: str, *, community: str | None, limit: int
    ) -> list[SocialPost] | None:
        """Run one subrequest; None marks a failed one."""
        try:
            return await self.client.search(query, community=community, limit=limit)
        except UpstreamAppError as exc:
            logger.info(
                "social_mentions.subrequest_failed",
                extra={"community": community, "error_code": exc.code},
            )
            return None

    async def fetch(self, cafe_name: str, city: str) -> SocialMentionsResponse:
        key = cafe_city_fingerprint(cafe_name, city)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        queries = [f"{cafe_name} {city} coffee", f"{cafe_name} cafe {city}"]
        batches = await asyncio.gather(
            *(
                self._safe_search(query, community=None, limit=GLOBAL_QUERY_LIMIT)
                for query in queries
            ),
            *(
                self._safe_search(cafe_name, community=community, limit=COMMUNITY_QUERY_LIMIT)
                for community in self.communities
            ),
        )
        posts = [post for batch in batches if batch for post in batch]
        result = summarize(posts)

        if all(batch is None for batch in batches):
            logger.warning(
                "social_mentions.all_subrequests_failed",
                extra={"subrequests": len(batches)},
            )
            return result

        self.cache.put(key, result)
        logger.info("social_mentions.fetched", extra={"total_mentions": result.total_mentions})
        return result
