from __future__ import annotations

from cafe_api.api.routes.enrichment import router as enrichment_router
from cafe_api.api.routes.health import router as health_router
from cafe_api.api.routes.interactions import router as interactions_router
from cafe_api.api.routes.migration import router as migration_router
from cafe_api.api.routes.rate_limit import router as rate_limit_router
from cafe_api.api.routes.search_state import router as search_state_router
from cafe_api.api.routes.user import router as user_router

__all__ = [
    "enrichment_router",
    "health_router",
    "interactions_router",
    "migration_router",
    "rate_limit_router",
    "search_state_router",
    "user_router",
]
