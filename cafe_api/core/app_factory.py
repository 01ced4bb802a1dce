"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability and separation of concerns compared to a monolithic main.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from cafe_api.api.dependencies import close_dependencies
from cafe_api.api.routes import (
    enrichment_router,
    health_router,
    interactions_router,
    migration_router,
    rate_limit_router,
    search_state_router,
    user_router,
)
from cafe_api.core.config import settings
from cafe_api.core.exception_handlers import setup_exception_handlers
from cafe_api.core.logging import configure_logging
from cafe_api.core.middleware import request_id_middleware
from cafe_api.core.openapi import apply_openapi_customizations


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await close_dependencies()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Cafe Match API",
        description=(
            "Backend for café recommendations: search quota per identity and "
            "network address, search lifecycle tracking, seen-but-unsaved place "
            "filtering, anonymous-to-account data migration, and cached "
            "enrichment (photo style, community mentions, match reasoning)."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    for router in (
        rate_limit_router,
        search_state_router,
        interactions_router,
        migration_router,
        enrichment_router,
        user_router,
    ):
        app.include_router(router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
