"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any import that might build settings.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o-mini")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("APP_IP_HASH_SALT", "test-salt")
os.environ.setdefault("APP_RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("APP_STORAGE_BACKEND", "memory")

from datetime import datetime, timedelta, timezone  # noqa: E402
from unittest.mock import AsyncMock, Mock  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from cafe_api.adapters.llm.base import AbstractLLMClient  # noqa: E402
from cafe_api.adapters.rate_limit.in_memory import InMemoryCounterStore  # noqa: E402
from cafe_api.adapters.social.base import AbstractSocialSearchClient  # noqa: E402
from cafe_api.adapters.storage.in_memory import InMemoryKeyValueStore  # noqa: E402
from cafe_api.api import dependencies  # noqa: E402
from cafe_api.core.app_factory import create_app  # noqa: E402
from cafe_api.services.rate_limiter import RateLimiter  # noqa: E402

TOKEN_KEY = "test-signing-key-with-at-least-32-bytes!"


class FakeClock:
    """Mutable datetime clock for services that stamp ISO timestamps."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_token(
    sub: str | None = "user-123",
    email: str | None = "ana@example.com",
    expires_in: float = 3600,
    key: str = TOKEN_KEY,
) -> str:
    claims: dict = {"exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in)}
    if sub is not None:
        claims["sub"] = sub
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, key, algorithm="HS256")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def epoch_clock() -> Mock:
    return Mock(return_value=1_700_000_000.0)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def rate_limiter(counter_store: InMemoryCounterStore, epoch_clock: Mock) -> RateLimiter:
    return RateLimiter(counter_store, max_requests=3, window_seconds=3600, clock=epoch_clock)


@pytest.fixture
def fake_llm() -> Mock:
    llm = Mock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(return_value={"descriptions": []})
    llm.describe_image = AsyncMock(return_value="minimalist, bright")
    return llm


@pytest.fixture
def fake_social() -> Mock:
    social = Mock(spec=AbstractSocialSearchClient)
    social.search = AsyncMock(return_value=[])
    social.aclose = AsyncMock()
    return social


@pytest.fixture
def app(
    kv_store: InMemoryKeyValueStore,
    rate_limiter: RateLimiter,
    fake_llm: Mock,
    fake_social: Mock,
):
    """Application wired to in-memory stores and fake upstream clients."""
    dependencies.reset_dependencies()
    application = create_app()
    application.dependency_overrides[dependencies.get_kv_store] = lambda: kv_store
    application.dependency_overrides[dependencies.get_rate_limiter] = lambda: rate_limiter
    application.dependency_overrides[dependencies.get_llm_client] = lambda: fake_llm
    application.dependency_overrides[dependencies.get_social_client] = lambda: fake_social
    yield application
    application.dependency_overrides.clear()
    dependencies.reset_dependencies()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}", "X-Forwarded-For": "203.0.113.7"}


@pytest.fixture
def anon_headers() -> dict[str, str]:
    return {"X-Forwarded-For": "203.0.113.7"}


@pytest.fixture
def token_factory():
    return make_token
