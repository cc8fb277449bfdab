from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import Response

from clypse.config import Settings, get_settings
from clypse.middleware.error_handler import ErrorHandlerMiddleware, setup_exception_handlers
from clypse.middleware.rate_limiter import RateLimitMiddleware
from clypse.observability.metrics import PrometheusMiddleware, router as metrics_router
from clypse.routers.files import router as files_router
from clypse.routers.health import router as health_router
from clypse.routers.rooms import router as rooms_router
from clypse.services.file_service import FileShareService
from clypse.services.sweeper import ExpirySweeper
from clypse.storage.base import KeyValueStore
from clypse.storage.factory import build_store
from clypse.utils.logger import log_info
from clypse.utils.telemetry import init_otel


def create_app(store: Optional[KeyValueStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. A store passed in is owned by the caller and is not closed on shutdown."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "store", None) is None
        if owned:
            app.state.store = build_store(settings)
        log_info(f"Clypse API: storage backend {type(app.state.store).__name__}")
        if settings.OTEL_ENABLED:
            # SqlStore exposes its engine; other backends have none
            init_otel(engine=getattr(app.state.store, "engine", None), service_name=settings.SERVICE_NAME)

        sweeper = None
        if settings.SWEEP_IN_PROCESS:
            files = FileShareService(
                app.state.store,
                max_file_size=settings.MAX_FILE_SIZE,
                file_ttl_seconds=settings.FILE_TTL_SECONDS,
                code_max_attempts=settings.CODE_MAX_ATTEMPTS,
            )
            sweeper = ExpirySweeper(files, interval=settings.SWEEP_INTERVAL)
            sweeper.start()
        try:
            yield
        finally:
            if sweeper is not None:
                await sweeper.stop()
            if owned:
                await app.state.store.close()
                app.state.store = None
            log_info("Clypse API: shut down")

    app = FastAPI(
        title="Clypse API",
        description="Share files and text between devices with short codes",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.dependency_overrides[get_settings] = lambda: settings

    # Add middleware (order matters: first added = outermost)
    # Error handler should be outermost to catch all errors
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.DEBUG)
    app.add_middleware(
        RateLimitMiddleware,
        api_limit=settings.API_RATE_LIMIT,
        general_limit=settings.GENERAL_RATE_LIMIT,
        trusted_proxies=settings.TRUSTED_PROXIES,
    )
    app.add_middleware(PrometheusMiddleware)

    setup_exception_handlers(app)

    app.include_router(health_router)  # Health checks at root level
    app.include_router(metrics_router)
    app.include_router(files_router, prefix="/api")
    app.include_router(rooms_router, prefix="/api")

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        """Return empty response for favicon to prevent 404 errors."""
        return Response(status_code=204)

    if settings.OTEL_ENABLED:
        init_otel(
            app=app,
            redis=settings.STORE_BACKEND == "redis",
            service_name=settings.SERVICE_NAME,
        )

    return app


app = create_app()


def get_app() -> FastAPI:
    return app
