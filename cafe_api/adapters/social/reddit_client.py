"""Reddit public JSON search adapter."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from cafe_api.adapters.social.base import AbstractSocialSearchClient
from cafe_api.core.errors import UpstreamAppError
from cafe_api.schemas.enrichment import SocialPost

logger = logging.getLogger(__name__)

PERMALINK_HOST = "https://reddit.com"


def parse_listing(payload: Any) -> list[SocialPost]:
    """Convert a Reddit listing payload into posts.

    Children without a title and body are skipped.
    """
    if not isinstance(payload, dict):
        return []
    children = (payload.get("data") or {}).get("children") or []
    posts: list[SocialPost] = []
    for child in children:
        data = child.get("data") if isinstance(child, dict) else None
        if not isinstance(data, dict):
            continue
        title = data.get("title") or ""
        body = data.get("selftext") or ""
        if not title and not body:
            continue
        posts.append(
            SocialPost(
                title=title,
                body=body,
                score=int(data.get("score") or 0),
                author=data.get("author"),
                created_utc=float(data.get("created_utc") or 0),
                permalink=f"{PERMALINK_HOST}{data.get('permalink', '')}",
                subreddit=data.get("subreddit"),
            )
        )
    return posts


class RedditSearchClient(AbstractSocialSearchClient):
    """Unauthenticated client for ``/search.json`` endpoints.

    Args:
        base_url: API root, e.g. ``https://www.reddit.com``.
        user_agent: User-Agent header (Reddit rejects blank agents).
        timeout_seconds: Per-request timeout.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
    """

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        timeout_seconds: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )

    def _search_url(self, community: str | None) -> str:
        if community:
            return f"{self.base_url}/r/{quote(community, safe='')}/search.json"
        return f"{self.base_url}/search.json"

    async def search(
        self,
        query: str,
        *,
        community: str | None = None,
        limit: int = 10,
    ) -> list[SocialPost]:
        params: dict[str, Any] = {"q": query, "limit": limit}
        if community:
            params["restrict_sr"] = 1
        else:
            params["sort"] = "relevance"

        try:
            response = await self.client.get(self._search_url(community), params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning(
                "social.search_failed",
                extra={"community": community, "error_type": type(exc).__name__},
            )
            raise UpstreamAppError(
                code="social_search_failed",
                message=f"Social search request failed: {exc}",
                details={"provider": "reddit"},
            ) from exc
        except ValueError as exc:
            raise UpstreamAppError(
                code="social_invalid_payload",
                message="Social search returned a non-JSON payload",
                details={"provider": "reddit"},
            ) from exc

        return parse_listing(payload)

    async def aclose(self) -> None:
        await self.client.aclose()
