"""OpenAI LLM client adapter."""

import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from cafe_api.adapters.llm.base import AbstractLLMClient
from cafe_api.core.errors import UpstreamAppError

logger = logging.getLogger(__name__)

JSON_ONLY_SYSTEM_PROMPT = "Output JSON only. No extra text or markdown formatting."


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI chat completions (text and vision).

    Uses the official OpenAI Python SDK with async support.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        vision_model: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Model name for JSON generation (e.g., "gpt-4o-mini").
            vision_model: Model for image description; defaults to ``model``.
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for requests in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model
        self.vision_model = vision_model or model

    async def _complete(self, request_params: dict[str, Any]) -> str:
        try:
            response = await self.client.chat.completions.create(**request_params)
        except OpenAIError as exc:
            raise UpstreamAppError(
                code="llm_request_failed",
                message=f"OpenAI API error: {exc}",
                details={"provider": "openai"},
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise UpstreamAppError(
                code="llm_empty_response",
                message="LLM returned empty response",
                details={"provider": "openai"},
            )
        return content.strip()

    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Generate JSON using chat completions in ``json_object`` mode.

        Args:
            prompt: User prompt to send to the model.
            system_prompt: System instructions (defaults to a JSON-only instruction).
            **kwargs: temperature, max_tokens, top_p, seed.

        Raises:
            UpstreamAppError: If the API call fails or the response is not valid JSON.
        """
        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt or JSON_ONLY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": kwargs.pop("temperature", 0.2),
            "response_format": {"type": "json_object"},
        }
        for param in ("max_tokens", "top_p", "seed"):
            if param in kwargs:
                request_params[param] = kwargs[param]

        content = await self._complete(request_params)
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("llm.invalid_json", extra={"response_chars": len(content)})
            raise UpstreamAppError(
                code="llm_invalid_json",
                message=f"LLM returned invalid JSON: {exc}",
                details={"provider": "openai"},
            ) from exc

    async def describe_image(
        self,
        image_url: str,
        prompt: str,
        *,
        max_tokens: int = 50,
    ) -> str:
        return await self._complete(
            {
                "model": self.vision_model,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image_url}},
                        ],
                    }
                ],
                "max_tokens": max_tokens,
            }
        )
