"""Style descriptors for café photos."""

from __future__ import annotations

import logging

from cafe_api.adapters.llm.base import AbstractLLMClient
from cafe_api.core.errors import UpstreamAppError
from cafe_api.utils.fingerprint import image_fingerprint
from cafe_api.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

IMAGE_PROMPT = (
    "Analyze this cafe photo and describe its style, ambiance, and vibe in 2-3 "
    "descriptive words or short phrases. Focus on the most prominent "
    "characteristics like: minimalist, cozy, industrial, vintage, modern, rustic, "
    "bright, intimate, spacious, plant-filled, art-filled, etc. Be specific and "
    "concise. Return ONLY the comma-separated descriptive words/phrases, nothing else."
)


class ImageAnalysisService:
    """Describe a photo's look in a few comma-separated words.

    Failures degrade to an empty string and are not cached.
    """

    def __init__(self, llm: AbstractLLMClient, cache: TTLCache[str]) -> None:
        self.llm = llm
        self.cache = cache

    async def analyze(self, image_url: str) -> str:
        key = image_fingerprint(image_url)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            analysis = await self.llm.describe_image(image_url, IMAGE_PROMPT, max_tokens=50)
        except UpstreamAppError as exc:
            logger.warning("image_analysis.failed", extra={"error_code": exc.code})
            return ""

        self.cache.put(key, analysis)
        return analysis
