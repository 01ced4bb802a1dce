"""Process-wide service wiring for the HTTP layer.

Stateful collaborators (counter store, key-value store, caches, upstream
clients) are created lazily on first use and kept in-module so their state
survives across requests. Routes receive them through ``Depends`` and tests
swap them via ``app.dependency_overrides`` or ``reset_dependencies()``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends

from cafe_api.adapters.llm.base import AbstractLLMClient
from cafe_api.adapters.llm.factory import create_llm_client
from cafe_api.adapters.rate_limit.base import AbstractCounterStore
from cafe_api.adapters.rate_limit.in_memory import InMemoryCounterStore
from cafe_api.adapters.social.base import AbstractSocialSearchClient
from cafe_api.adapters.social.reddit_client import RedditSearchClient
from cafe_api.adapters.storage.base import AbstractKeyValueStore
from cafe_api.adapters.storage.in_memory import InMemoryKeyValueStore
from cafe_api.core.config import STORE_BACKENDS, settings
from cafe_api.schemas.enrichment import SocialMentionsResponse
from cafe_api.services.image_analysis import ImageAnalysisService
from cafe_api.services.match_reasoning import MatchReasoningService
from cafe_api.services.migration import AnonymousDataMigrator
from cafe_api.services.place_interactions import PlaceInteractionService
from cafe_api.services.rate_limiter import RateLimiter
from cafe_api.services.saved_places import SavedPlacesService
from cafe_api.services.search_state import SearchLifecycleTracker
from cafe_api.services.social_mentions import SocialMentionsService
from cafe_api.services.user_profile import UserProfileService
from cafe_api.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

_counter_store: AbstractCounterStore | None = None
_rate_limiter: RateLimiter | None = None
_rate_limiter_config: tuple[int, int] | None = None
_kv_store: AbstractKeyValueStore | None = None
_llm_client: AbstractLLMClient | None = None
_social_client: AbstractSocialSearchClient | None = None
_image_cache: TTLCache[str] | None = None
_social_cache: TTLCache[SocialMentionsResponse] | None = None
_reasoning_cache: TTLCache[list[str]] | None = None


def _unknown_backend(setting: str, value: str) -> ValueError:
    return ValueError(f"Unknown {setting}: '{value}'. Supported: {', '.join(STORE_BACKENDS)}")


def get_counter_store() -> AbstractCounterStore:
    global _counter_store

    if _counter_store is None:
        backend = settings.app.rate_limit_backend.lower()
        if backend == "memory":
            _counter_store = InMemoryCounterStore()
        elif backend == "redis":
            from cafe_api.adapters.rate_limit.redis_store import RedisCounterStore

            _counter_store = RedisCounterStore.from_url(settings.app.redis_url)
        else:
            raise _unknown_backend("rate limit backend", backend)
        logger.info("dependencies.counter_store_created", extra={"backend": backend})
    return _counter_store


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter.

    The limiter is rebuilt over the same counter store when the configured
    limit or window changes (primarily in tests).
    """
    global _rate_limiter, _rate_limiter_config

    config = (
        settings.app.rate_limit_max_requests,
        settings.app.rate_limit_window_seconds,
    )
    if _rate_limiter is None or _rate_limiter_config != config:
        _rate_limiter = RateLimiter(
            get_counter_store(),
            max_requests=settings.app.rate_limit_max_requests,
            window_seconds=settings.app.rate_limit_window_seconds,
        )
        _rate_limiter_config = config
    return _rate_limiter


def get_kv_store() -> AbstractKeyValueStore:
    global _kv_store

    if _kv_store is None:
        backend = settings.app.storage_backend.lower()
        if backend == "memory":
            _kv_store = InMemoryKeyValueStore()
        elif backend == "redis":
            from cafe_api.adapters.storage.redis_store import RedisKeyValueStore

            _kv_store = RedisKeyValueStore.from_url(settings.app.redis_url)
        else:
            raise _unknown_backend("storage backend", backend)
        logger.info("dependencies.kv_store_created", extra={"backend": backend})
    return _kv_store


def get_search_tracker(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> SearchLifecycleTracker:
    return SearchLifecycleTracker(store)


def get_interaction_service(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> PlaceInteractionService:
    return PlaceInteractionService(store)


def get_profile_service(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
) -> UserProfileService:
    return UserProfileService(store)


def get_saved_places_service(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
    interactions: Annotated[PlaceInteractionService, Depends(get_interaction_service)],
) -> SavedPlacesService:
    return SavedPlacesService(store, interactions)


def get_migrator(
    store: Annotated[AbstractKeyValueStore, Depends(get_kv_store)],
    interactions: Annotated[PlaceInteractionService, Depends(get_interaction_service)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> AnonymousDataMigrator:
    return AnonymousDataMigrator(store, interactions, rate_limiter)


def get_llm_client() -> AbstractLLMClient:
    global _llm_client

    if _llm_client is None:
        _llm_client = create_llm_client()
    return _llm_client


def get_social_client() -> AbstractSocialSearchClient:
    global _social_client

    if _social_client is None:
        _social_client = RedditSearchClient(
            base_url=settings.social.base_url,
            user_agent=settings.social.user_agent,
            timeout_seconds=settings.social.timeout_seconds,
        )
    return _social_client


def get_image_cache() -> TTLCache[str]:
    global _image_cache

    if _image_cache is None:
        _image_cache = TTLCache(
            ttl_seconds=settings.cache.image_ttl_seconds,
            sweep_threshold=settings.cache.image_sweep_threshold,
            name="image_analysis",
        )
    return _image_cache


def get_social_cache() -> TTLCache[SocialMentionsResponse]:
    global _social_cache

    if _social_cache is None:
        _social_cache = TTLCache(
            ttl_seconds=settings.cache.social_ttl_seconds,
            sweep_threshold=settings.cache.social_sweep_threshold,
            name="social_mentions",
        )
    return _social_cache


def get_reasoning_cache() -> TTLCache[list[str]]:
    global _reasoning_cache

    if _reasoning_cache is None:
        _reasoning_cache = TTLCache(
            ttl_seconds=settings.cache.reasoning_ttl_seconds,
            sweep_threshold=settings.cache.reasoning_sweep_threshold,
            name="match_reasoning",
        )
    return _reasoning_cache


def get_image_service(
    llm: Annotated[AbstractLLMClient, Depends(get_llm_client)],
    cache: Annotated[TTLCache[str], Depends(get_image_cache)],
) -> ImageAnalysisService:
    return ImageAnalysisService(llm, cache)


def get_social_service(
    client: Annotated[AbstractSocialSearchClient, Depends(get_social_client)],
    cache: Annotated[TTLCache[SocialMentionsResponse], Depends(get_social_cache)],
) -> SocialMentionsService:
    return SocialMentionsService(client, cache, settings.social.subreddit_list)


def get_reasoning_service(
    llm: Annotated[AbstractLLMClient, Depends(get_llm_client)],
    cache: Annotated[TTLCache[list[str]], Depends(get_reasoning_cache)],
) -> MatchReasoningService:
    return MatchReasoningService(llm, cache)


async def close_dependencies() -> None:
    """Release network clients created by this module."""
    if _social_client is not None:
        await _social_client.aclose()


def reset_dependencies() -> None:
    """Drop every cached collaborator so the next request rebuilds it."""
    global _counter_store, _rate_limiter, _rate_limiter_config, _kv_store
    global _llm_client, _social_client, _image_cache, _social_cache, _reasoning_cache

    _counter_store = None
    _rate_limiter = None
    _rate_limiter_config = None
    _kv_store = None
    _llm_client = None
    _social_client = None
    _image_cache = None
    _social_cache = None
    _reasoning_cache = None
