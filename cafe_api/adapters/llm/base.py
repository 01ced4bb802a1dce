"""LLM client interface used by the enrichment services."""

from abc import ABC, abstractmethod
from typing import Any


class AbstractLLMClient(ABC):
    """Interface for LLM clients producing JSON and short image descriptions.

    Implementations raise ``UpstreamAppError`` when the provider call fails or
    the response cannot be parsed.
    """

    @abstractmethod
    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Generate a JSON response from the model.

        Args:
            prompt: User prompt sent to the model.
            system_prompt: Optional system instructions; a JSON-only instruction
                is used when omitted.
            **kwargs: Provider-specific options (e.g., temperature, max_tokens).

        Returns:
            The decoded JSON value (object or array).
        """
        ...

    @abstractmethod
    async def describe_image(
        self,
        image_url: str,
        prompt: str,
        *,
        max_tokens: int = 50,
    ) -> str:
        """Return the model's free-text answer to ``prompt`` about the image."""
        ...
