"""LLM adapter layer - abstracts over multiple LLM providers."""

from cafe_api.adapters.llm.base import AbstractLLMClient
from cafe_api.adapters.llm.factory import create_llm_client
from cafe_api.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "OpenAIClient",
    "create_llm_client",
]
