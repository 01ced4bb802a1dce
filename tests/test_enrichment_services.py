"""Unit tests for image analysis, social mentions and match reasoning."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from cafe_api.adapters.social.reddit_client import RedditSearchClient, parse_listing
from cafe_api.core.errors import UpstreamAppError
from cafe_api.schemas.enrichment import CafeSummary, SocialMentionsResponse, SocialPost
from cafe_api.services.image_analysis import ImageAnalysisService
from cafe_api.services.match_reasoning import (
    FALLBACK_REASONING,
    PADDING_REASONING,
    MatchReasoningService,
    build_user_prompt,
    extract_reasonings,
)
from cafe_api.services.social_mentions import SocialMentionsService, rank_key, summarize
from cafe_api.utils.ttl_cache import TTLCache

COMMUNITIES = ["Coffee", "cafe", "espresso", "specialty_coffee"]


def _upstream_error() -> UpstreamAppError:
    return UpstreamAppError(code="llm_request_failed", message="boom")


def _cache(clock: Mock | None = None) -> TTLCache:
    return TTLCache(ttl_seconds=60, sweep_threshold=10, clock=clock or Mock(return_value=0.0))


def _post(title: str, score: int, created: float = 0) -> SocialPost:
    return SocialPost(title=title, score=score, created_utc=created, permalink=f"https://reddit.com/{title}")


class TestImageAnalysis:
    @pytest.mark.asyncio
    async def test_caches_successful_analysis(self, fake_llm):
        service = ImageAnalysisService(fake_llm, _cache())

        assert await service.analyze("https://img/1.jpg") == "minimalist, bright"
        assert await service.analyze("https://img/1.jpg") == "minimalist, bright"
        fake_llm.describe_image.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_returns_empty_and_is_not_cached(self, fake_llm):
        fake_llm.describe_image.side_effect = [_upstream_error(), "cozy"]
        service = ImageAnalysisService(fake_llm, _cache())

        assert await service.analyze("https://img/1.jpg") == ""
        assert await service.analyze("https://img/1.jpg") == "cozy"
        assert fake_llm.describe_image.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_expiry_triggers_new_call(self, fake_llm):
        clock = Mock(return_value=0.0)
        service = ImageAnalysisService(fake_llm, _cache(clock))

        await service.analyze("https://img/1.jpg")
        clock.return_value = 60.0
        await service.analyze("https://img/1.jpg")

        assert fake_llm.describe_image.await_count == 2


class TestSocialMentions:
    def test_rank_key_formula(self):
        assert rank_key(_post("a", 10, 1_000_000)) == pytest.approx(10 * 0.7 + 0.3)

    def test_summarize_ranks_top_ten_and_averages_all(self):
        posts = [_post(f"p{i}", i) for i in range(12)]

        summary = summarize(posts)

        assert summary.total_mentions == 12
        assert summary.average_score == pytest.approx(5.5)
        assert len(summary.posts) == 10
        assert summary.posts[0].title == "p11"

    def test_summarize_empty(self):
        summary = summarize([])
        assert summary == SocialMentionsResponse(posts=[], total_mentions=0, average_score=0)

    @pytest.mark.asyncio
    async def test_fans_out_global_and_community_queries(self, fake_social):
        service = SocialMentionsService(fake_social, _cache(), COMMUNITIES)

        await service.fetch("Blue Bottle", "Tokyo")

        calls = fake_social.search.await_args_list
        assert len(calls) == 6
        global_calls = [c for c in calls if c.kwargs["community"] is None]
        assert [c.args[0] for c in global_calls] == [
            "Blue Bottle Tokyo coffee",
            "Blue Bottle cafe Tokyo",
        ]
        assert all(c.kwargs["limit"] == 10 for c in global_calls)
        community_calls = [c for c in calls if c.kwargs["community"] is not None]
        assert sorted(c.kwargs["community"] for c in community_calls) == sorted(COMMUNITIES)
        assert all(c.kwargs["limit"] == 5 for c in community_calls)

    @pytest.mark.asyncio
    async def test_failed_subrequest_contributes_nothing(self, fake_social):
        async def search(query, *, community=None, limit=10):
            if community == "espresso":
                raise UpstreamAppError(code="social_search_failed", message="503")
            return [_post(f"{community or 'all'}-{query}", 4)]

        fake_social.search = AsyncMock(side_effect=search)
        service = SocialMentionsService(fake_social, _cache(), COMMUNITIES)

        result = await service.fetch("Blue Bottle", "Tokyo")

        assert result.total_mentions == 5
        assert result.average_score == 4

    @pytest.mark.asyncio
    async def test_results_cached_by_normalized_name_and_city(self, fake_social):
        service = SocialMentionsService(fake_social, _cache(), COMMUNITIES)

        await service.fetch("Blue Bottle", "Tokyo")
        await service.fetch("blue  bottle", "TOKYO")

        assert fake_social.search.await_count == 6

    @pytest.mark.asyncio
    async def test_total_outage_is_not_cached(self, fake_social):
        fake_social.search.side_effect = UpstreamAppError(code="social_search_failed", message="503")
        service = SocialMentionsService(fake_social, _cache(), COMMUNITIES)

        result = await service.fetch("Blue Bottle", "Tokyo")
        assert result.total_mentions == 0
        assert result.posts == []

        fake_social.search.side_effect = None
        fake_social.search.return_value = [_post("back", 3)]
        recovered = await service.fetch("Blue Bottle", "Tokyo")

        assert recovered.total_mentions == 6
        assert fake_social.search.await_count == 12


class TestRedditClient:
    @pytest.mark.asyncio
    async def test_search_builds_community_url_and_parses(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "children": [
                            {"data": {"title": "Great pour-over", "selftext": "", "score": 12,
                                      "author": "bean", "created_utc": 1700000000,
                                      "permalink": "/r/Coffee/abc", "subreddit": "Coffee"}},
                            {"data": {"title": "", "selftext": ""}},
                        ]
                    }
                },
            )

        client = RedditSearchClient(
            base_url="https://www.reddit.com",
            user_agent="test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        posts = await client.search("Blue Bottle", community="Coffee", limit=5)
        await client.aclose()

        assert seen[0].url.path == "/r/Coffee/search.json"
        assert seen[0].url.params["restrict_sr"] == "1"
        assert len(posts) == 1
        assert posts[0].permalink == "https://reddit.com/r/Coffee/abc"

    @pytest.mark.asyncio
    async def test_http_error_raises_upstream_error(self):
        client = RedditSearchClient(
            base_url="https://www.reddit.com",
            user_agent="test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(429))),
        )
        with pytest.raises(UpstreamAppError):
            await client.search("x")
        await client.aclose()

    def test_parse_listing_tolerates_garbage(self):
        assert parse_listing(["not", "a", "listing"]) == []
        assert parse_listing({"data": {"children": [None, {"data": None}]}}) == []


class TestMatchReasoning:
    SOURCE = CafeSummary(name="Origin", rating=4.6, price_level=2)
    CANDIDATES = [CafeSummary(name="A"), CafeSummary(name="B"), CafeSummary(name="C")]

    @pytest.mark.parametrize(
        "parsed, expected",
        [
            (["x", "y"], ["x", "y"]),
            ({"descriptions": ["x"]}, ["x"]),
            ({"reasonings": ["y"]}, ["y"]),
            ({"cafes": ["z"], "meta": "ignored"}, ["z"]),
            ({"nothing": "here"}, []),
            ("plain string", []),
        ],
    )
    def test_extract_reasonings_shapes(self, parsed, expected):
        assert extract_reasonings(parsed) == expected

    def test_prompt_includes_preferences_and_community_signal(self):
        candidate = CafeSummary(
            name="A",
            social_mentions=SocialMentionsResponse(total_mentions=4, average_score=12),
        )
        prompt = build_user_prompt(self.SOURCE, [candidate], "Lisbon", {"nightOwl": True, "cozy": False})

        assert "Open late night" in prompt
        assert "Cozy atmosphere" not in prompt
        assert "highly praised" in prompt
        assert "Location: Lisbon" in prompt

    @pytest.mark.asyncio
    async def test_pads_short_output(self, fake_llm):
        fake_llm.generate_json.return_value = {"descriptions": ["Hip third-wave spot."]}
        service = MatchReasoningService(fake_llm, _cache())

        reasonings = await service.reason_batch(self.SOURCE, self.CANDIDATES)

        assert reasonings == ["Hip third-wave spot.", PADDING_REASONING, PADDING_REASONING]

    @pytest.mark.asyncio
    async def test_truncates_long_output(self, fake_llm):
        fake_llm.generate_json.return_value = ["a", "b", "c", "d"]
        service = MatchReasoningService(fake_llm, _cache())

        assert await service.reason_batch(self.SOURCE, self.CANDIDATES) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_failure_uses_fallback_and_is_not_cached(self, fake_llm):
        fake_llm.generate_json.side_effect = [_upstream_error(), ["a", "b", "c"]]
        service = MatchReasoningService(fake_llm, _cache())

        assert await service.reason_batch(self.SOURCE, self.CANDIDATES) == [FALLBACK_REASONING] * 3
        assert await service.reason_batch(self.SOURCE, self.CANDIDATES) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_cached_by_source_and_candidate_names(self, fake_llm):
        fake_llm.generate_json.return_value = ["a", "b", "c"]
        service = MatchReasoningService(fake_llm, _cache())

        await service.reason_batch(self.SOURCE, self.CANDIDATES)
        await service.reason_batch(self.SOURCE, self.CANDIDATES, city="Elsewhere")

        fake_llm.generate_json.assert_awaited_once()
