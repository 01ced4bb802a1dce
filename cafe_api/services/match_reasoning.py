"""Batch "why this café matches" descriptions."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from cafe_api.adapters.llm.base import AbstractLLMClient
from cafe_api.core.errors import UpstreamAppError
from cafe_api.schemas.enrichment import CafeSummary
from cafe_api.utils.fingerprint import candidates_fingerprint, enabled_vibes
from cafe_api.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

PADDING_REASONING = "Similar vibe and quality."
FALLBACK_REASONING = "Similar atmosphere and quality."

VIBE_LABELS: dict[str, str] = {
    "roastery": "Roastery (on-site roasting)",
    "lightRoast": "Light roast / third-wave coffee",
    "laptopFriendly": "Laptop-friendly workspace",
    "nightOwl": "Open late night",
    "cozy": "Cozy atmosphere",
    "minimalist": "Minimalist aesthetic",
}


def _price(level: int | None) -> str:
    return "$" * level if level else "N/A"


def _social_line(cafe: CafeSummary) -> str:
    mentions = cafe.social_mentions
    if mentions is None or mentions.total_mentions <= 0:
        return ""
    if mentions.average_score > 10:
        tone = "highly praised"
    elif mentions.average_score > 5:
        tone = "well-liked"
    else:
        tone = "discussed"
    return f"Community: {mentions.total_mentions} mentions ({tone})."


def build_system_prompt(count: int) -> str:
    return f"""
You match coffee shops based on their characteristics, vibe, community reputation, and visual aesthetics.
Create compelling, personality-rich explanations of why cafés match a source café.

REQUIREMENTS:
1. Generate {count} UNIQUE descriptions, one for each café listed, in order
2. Each description starts with a DIFFERENT short, punchy descriptor (3-5 words)
3. Vary the emphasis: ambiance, community, quality, location, style
4. 2-3 sentences per café, specific, no generic fluff

Return ONLY a JSON object {{"descriptions": [...]}} with {count} strings.
""".strip()


def build_user_prompt(
    source: CafeSummary,
    candidates: list[CafeSummary],
    city: str | None,
    vibes: Mapping[str, Any] | list[str] | None,
) -> str:
    preferences = ", ".join(VIBE_LABELS.get(name, name) for name in enabled_vibes(vibes))

    blocks = []
    for index, cafe in enumerate(candidates, start=1):
        lines = [
            f"CAFÉ {index}: {cafe.name}",
            f"Rating: {cafe.rating or 'N/A'}/5 ({cafe.user_ratings_total or 0} reviews)",
            f"Price: {_price(cafe.price_level)}",
        ]
        if cafe.editorial_summary:
            lines.append(f"Summary: {cafe.editorial_summary}")
        if cafe.image_analysis:
            lines.append(f"Visual style: {cafe.image_analysis}")
        social = _social_line(cafe)
        if social:
            lines.append(social)
        lines.append(f"Matched attributes: {', '.join(cafe.keywords) or 'Similar quality'}")
        blocks.append("\n".join(lines))

    header = [
        f"Source café: {source.name}",
        f"Rating: {source.rating or 'N/A'}/5",
        f"Price: {_price(source.price_level)}",
        f"Location: {city or 'Unknown'}",
    ]
    if preferences:
        header.append(f"User preferences: {preferences}")

    return (
        "\n".join(header)
        + f"\n\nConsider the user's preferences ({preferences or 'general quality match'}) "
        "when describing each match.\n\n"
        + f"Here are {len(candidates)} candidate cafés:\n\n"
        + "\n---\n".join(blocks)
    )


def extract_reasonings(parsed: Any) -> list[str]:
    """Pull the description list out of the model's JSON.

    Accepts a bare array, ``{"descriptions": [...]}``, ``{"reasonings": [...]}``
    or any object whose first array value holds the descriptions.
    """
    if isinstance(parsed, list):
        values = parsed
    elif isinstance(parsed, dict):
        values = None
        for field in ("descriptions", "reasonings"):
            if isinstance(parsed.get(field), list):
                values = parsed[field]
                break
        if values is None:
            values = next((v for v in parsed.values() if isinstance(v, list)), [])
    else:
        values = []
    return [str(value) for value in values if isinstance(value, str) and value.strip()]


class MatchReasoningService:
    """One short description per candidate explaining the match."""

    def __init__(self, llm: AbstractLLMClient, cache: TTLCache[list[str]]) -> None:
        self.llm = llm
        self.cache = cache

    async def reason_batch(
        self,
        source: CafeSummary,
        candidates: list[CafeSummary],
        city: str | None = None,
        vibes: Mapping[str, Any] | list[str] | None = None,
    ) -> list[str]:
        """Return exactly ``len(candidates)`` descriptions.

        Short model output is padded; a failed call yields a generic
        description for every candidate and is not cached.
        """
        key = candidates_fingerprint(source.name, (c.name for c in candidates))
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        try:
            parsed = await self.llm.generate_json(
                build_user_prompt(source, candidates, city, vibes),
                system_prompt=build_system_prompt(len(candidates)),
                temperature=0.9,
                max_tokens=800,
            )
        except UpstreamAppError as exc:
            logger.warning("match_reasoning.failed", extra={"error_code": exc.code})
            return [FALLBACK_REASONING] * len(candidates)

        reasonings = extract_reasonings(parsed)[: len(candidates)]
        if len(reasonings) < len(candidates):
            logger.info(
                "match_reasoning.padded",
                extra={"received": len(reasonings), "expected": len(candidates)},
            )
            reasonings.extend([PADDING_REASONING] * (len(candidates) - len(reasonings)))

        self.cache.put(key, list(reasonings))
        return reasonings
