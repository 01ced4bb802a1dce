from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from cafe_api.api.dependencies import get_rate_limiter
from cafe_api.core.config import settings
from cafe_api.core.identity import CallerContext, get_caller
from cafe_api.schemas.rate_limit import RateLimitResponse
from cafe_api.services.rate_limiter import RateLimitDecision, RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Rate limit"])


def _iso(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


def _to_response(decision: RateLimitDecision, caller: CallerContext) -> RateLimitResponse:
    error = None
    if decision.blocked_by == "error":
        error = "Rate limit service unavailable"
    elif not decision.allowed:
        error = "Rate limit exceeded. Try again later."

    return RateLimitResponse(
        allowed=decision.allowed,
        remaining=decision.remaining,
        reset_at=_iso(decision.reset_at),
        current_count=decision.current_count,
        limit=decision.limit,
        window_hours=decision.window_seconds / 3600,
        blocked_by=decision.blocked_by,
        is_authenticated=caller.is_authenticated,
        error=error,
    )


@router.post("/rate-limit/check", response_model=RateLimitResponse)
async def check_rate_limit(
    caller: Annotated[CallerContext, Depends(get_caller)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
):
    """Consume one search from the caller's quota.

    Both the caller identity and the network address are counted. Returns 429
    with ``Retry-After`` when either is exhausted, or when the counter store is
    unreachable.
    """
    if not settings.app.rate_limit_enabled:
        now = limiter.now()
        return RateLimitResponse(
            allowed=True,
            remaining=limiter.max_requests,
            reset_at=_iso(now + limiter.window_seconds),
            current_count=0,
            limit=limiter.max_requests,
            window_hours=limiter.window_seconds / 3600,
            is_authenticated=caller.is_authenticated,
        )

    decision = await limiter.check_and_increment(caller.identity, caller.client_ip)
    body = _to_response(decision, caller)

    if decision.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "authenticated": caller.is_authenticated,
                "limit": decision.limit,
                "remaining": decision.remaining,
            },
        )
        return body

    retry_after = decision.retry_after_seconds(limiter.now())
    logger.warning(
        "rate_limit.blocked",
        extra={
            "authenticated": caller.is_authenticated,
            "blocked_by": decision.blocked_by,
            "current_count": decision.current_count,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(decision.limit)
        headers["X-RateLimit-Remaining"] = str(decision.remaining)
        headers["X-RateLimit-Reset"] = str(int(decision.reset_at))

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(by_alias=True),
        headers=headers or None,
    )
