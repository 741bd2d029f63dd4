from __future__ import annotations

"""Application factory for the FastAPI app.

Builds the app with its rate limiting collaborators held on ``app.state``
(limiter, rule table, settings, sweeper) so tests and alternative
deployments can inject their own store, clock or rules.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.api.routes import health_router, rate_limit_router
from app.core.config import Settings
from app.core.config import settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import rate_limit_middleware, request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit_rules import RateLimitRules, build_default_rules
from app.core.sweeper import RateLimitSweeper
from app.services.rate_limiter import RateLimiter


def create_app(
    *,
    app_settings: Settings | None = None,
    limiter: RateLimiter | None = None,
    rules: RateLimitRules | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the environment-loaded settings.
        limiter: Rate limiter to use; defaults to one over a fresh in-memory store.
        rules: Route classification table; defaults to the built-in table for
            the configured environment.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    limiter = limiter or RateLimiter(InMemoryRateLimitStore())
    rules = rules or build_default_rules(cfg.app_env)
    sweeper = RateLimitSweeper(limiter, interval_seconds=cfg.app.rate_limit_sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(
        title="Job Tracker API",
        description=(
            "Job application tracker API. Every route is subject to per-client "
            "rate limiting: reads are lenient, writes and authentication are "
            "strict, and exhausted quotas answer HTTP 429 with Retry-After."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.rate_limiter = limiter
    app.state.rate_limit_rules = rules
    app.state.rate_limit_sweeper = sweeper

    # Middleware (last registered runs first)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app, exempt_paths=cfg.app.rate_limit_exempt_paths)

    return app
