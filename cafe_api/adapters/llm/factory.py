"""Build the process LLM client from ``LLM_*`` settings."""

from __future__ import annotations

import logging

from cafe_api.adapters.llm.base import AbstractLLMClient
from cafe_api.adapters.llm.openai_client import OpenAIClient
from cafe_api.core.config import LLMSettings, settings
from cafe_api.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai",)


def create_llm_client(llm_settings: LLMSettings | None = None) -> AbstractLLMClient:
    """Instantiate the client used for JSON generation and image description.

    Args:
        llm_settings: Overrides the global ``settings.llm`` (tests, scripts).

    Raises:
        ValidationAppError: Unknown provider or missing provider credentials.
    """
    cfg = llm_settings or settings.llm
    provider = cfg.provider.lower()

    if provider not in SUPPORTED_PROVIDERS:
        raise ValidationAppError(
            code="llm_unknown_provider",
            message=f"Unknown LLM provider: '{provider}'",
            details={"allowed_values": list(SUPPORTED_PROVIDERS)},
        )

    if not cfg.api_key:
        raise ValidationAppError(
            code="llm_missing_api_key",
            message="The openai provider requires LLM_API_KEY",
            details={"provider": provider},
        )

    vision_model = cfg.vision_model or cfg.model
    logger.info(
        "llm.client_created",
        extra={"provider": provider, "model": cfg.model, "vision_model": vision_model},
    )
    return OpenAIClient(
        api_key=cfg.api_key,
        model=cfg.model,
        vision_model=vision_model,
        base_url=cfg.base_url,
        timeout_seconds=cfg.timeout_seconds,
    )
