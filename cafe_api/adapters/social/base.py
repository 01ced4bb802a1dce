"""Social-content search interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from cafe_api.schemas.enrichment import SocialPost


class AbstractSocialSearchClient(ABC):
    """Search a public social platform for posts mentioning a café.

    Implementations raise ``UpstreamAppError`` for transport errors, non-2xx
    responses and unparseable payloads.
    """

    @abstractmethod
    async def search(
        self,
        query: str,
        *,
        community: str | None = None,
        limit: int = 10,
    ) -> list[SocialPost]:
        """Return posts matching ``query``, optionally within one community."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""
