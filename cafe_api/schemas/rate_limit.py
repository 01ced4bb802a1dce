"""Pydantic schemas for the rate-limit check endpoint."""

from __future__ import annotations

from pydantic import Field

from cafe_api.schemas.common import CamelModel


class RateLimitResponse(CamelModel):
    """Quota status after consulting (and possibly consuming) one search."""

    allowed: bool
    remaining: int = Field(..., description="Searches left in the current window.")
    reset_at: str = Field(..., description="ISO-8601 UTC time when the window resets.")
    current_count: int
    limit: int
    window_hours: float
    blocked_by: str | None = Field(
        None,
        description="identity, ip, both, or error when the counter store failed.",
    )
    is_authenticated: bool
    error: str | None = None
