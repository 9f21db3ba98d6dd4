from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
import structlog

from turnstile.config import Settings, StorageBackend, get_settings
from turnstile.api.middleware import RateLimitMiddleware
from turnstile.api.routes import router
from turnstile.core.errors import StoreConnectionError
from turnstile.core.logging import setup_logging
from turnstile.core.storage.base import CounterStore
from turnstile.core.storage.memory import InMemoryStore
from turnstile.core.storage.redis import RedisStore
from turnstile.core.strategies.fixed_window import RateLimiter

logger = structlog.get_logger()


async def create_store(settings: Settings) -> tuple[CounterStore, StorageBackend]:
    """
    Build the configured store.
    Falls back to process memory when Redis does not answer at startup.
    """
    if settings.storage_backend == StorageBackend.REDIS:
        try:
            store = await RedisStore.connect(
                settings.redis_url,
                timeout=settings.redis_connect_timeout,
            )
            return store, StorageBackend.REDIS
        except StoreConnectionError as exc:
            logger.warning("storage_fallback_to_memory", error=str(exc))

    return InMemoryStore(sweep_interval=settings.sweep_interval), StorageBackend.MEMORY


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifecycle manager.
        Builds the store and limiter on startup and releases the store on shutdown.
        """
        setup_logging(settings.log_level)

        store, backend = await create_store(settings)
        limiter = RateLimiter(
            store,
            ip_limit=settings.rate_limit_ip,
            token_limit=settings.rate_limit_token,
            block_duration=settings.block_duration_seconds,
        )
        for token, limit in settings.token_limits.items():
            limiter.set_token_limit(token, limit)

        app.state.store = store
        app.state.limiter = limiter
        app.state.storage_backend = backend.value

        logger.info(
            "turnstile_started",
            storage=backend.value,
            ip_limit=settings.rate_limit_ip,
            token_limit=settings.rate_limit_token,
            block_duration=settings.block_duration_seconds,
        )
        try:
            yield
        finally:
            app.state.limiter = None
            await store.close()
            logger.info("turnstile_stopped")

    app = FastAPI(
        title=settings.app_name,
        lifespan=lifespan
    )
    app.add_middleware(RateLimitMiddleware)
    app.include_router(router)
    return app


app = create_app()
