"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.rate_limit.unified import UnifiedRateLimiter
from app.api.routes import food_router, health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import build_rate_limiter

logger = logging.getLogger(__name__)


def create_app(
    *,
    rate_limiter_factory: Callable[[], UnifiedRateLimiter] = build_rate_limiter,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter_factory: Builds the limiter when the app starts. Tests
            pass a factory returning a limiter with a controlled clock or
            remote backend.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.rate_limiter = rate_limiter_factory()
        logger.info(
            "app.startup",
            extra={"rate_limit_backend": app.state.rate_limiter.backend},
        )
        try:
            yield
        finally:
            await app.state.rate_limiter.aclose()
            logger.info("app.shutdown")

    app = FastAPI(
        title="Food Zone API",
        description=(
            "AI-backed endpoints for a personal health tracker: identify meals "
            "from photos and classify ingredients into green/yellow/red zones. "
            "Both endpoints are rate limited per client IP."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.food_service = None

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(food_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
