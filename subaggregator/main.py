"""
FastAPI application factory
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from subaggregator.api.v1 import subscriptions
from subaggregator.application.scheduler import shutdown_scheduler, start_maintenance_scheduler
from subaggregator.application.subscriptions import SubscriptionService
from subaggregator.config import Settings, get_settings
from subaggregator.errors import (
    CacheUnavailableError, InvalidTermError, NotFoundError, StoreUnavailableError,
)
from subaggregator.infrastructure.cache.memory_cache import MemoryCache
from subaggregator.infrastructure.cache.redis_cache import RedisCache
from subaggregator.infrastructure.db.repository import SqlSubscriptionRepository
from subaggregator.infrastructure.db.session import get_session_factory

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_cache(settings: Settings):
    """Cache backend selected by CACHE_BACKEND"""
    if settings.CACHE_BACKEND == "memory":
        logger.info("using in-process memory cache")
        return MemoryCache()

    cache = RedisCache.from_url(settings.REDIS_URL)
    try:
        cache.ping()
    except CacheUnavailableError as exc:
        # Reads will fail until Redis comes up; writes degrade to store-only
        logger.warning("redis not reachable at startup: %s", exc)
    return cache


def build_service(settings: Settings) -> SubscriptionService:
    """Wire the production repository and cache."""
    return SubscriptionService(
        repo=SqlSubscriptionRepository(get_session_factory()),
        cache=build_cache(settings),
        ttl=settings.CACHE_TTL_SECONDS,
        admin_role=settings.ADMIN_ROLE,
    )


def create_app(
    service: Optional[SubscriptionService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Application factory - создаёт и настраивает FastAPI приложение

    Args:
        service: готовый SubscriptionService (тесты); по умолчанию Postgres + Redis
        settings: настройки; по умолчанию get_settings()
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if settings.PAYMENT_ROLLOVER_ENABLED:
            scheduler = start_maintenance_scheduler(app.state.subscription_service, settings)
        yield
        if scheduler is not None:
            shutdown_scheduler(scheduler)
        cache = app.state.subscription_service.cache
        if isinstance(cache, RedisCache):
            cache.close()

    app = FastAPI(
        title="Subscription Aggregator",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.subscription_service = service or build_service(settings)

    # Error mapping: client-caused -> 4xx, backend failures -> 503
    @app.exception_handler(InvalidTermError)
    async def invalid_term_handler(request: Request, exc: InvalidTermError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailableError)
    @app.exception_handler(CacheUnavailableError)
    async def unavailable_handler(request: Request, exc: Exception):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Service unavailable"})

    app.include_router(subscriptions.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (проверяет доступность БД)"""
        app.state.subscription_service.repo.check_ready()
        return "ok"

    return app


def run() -> None:
    import uvicorn
    uvicorn.run(
        "subaggregator.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )


if __name__ == "__main__":
    run()
