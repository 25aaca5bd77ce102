import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from ...config import Settings
from ...logging import init_logging, info as log_info, LogRecord, LogEvent
from ...domain.exceptions import DashWorkerException
from ...application.cache import TTLCache
from ...application.dashboard import DashboardService
from ...application.patch_resolver import PatchProjectResolver
from ...application.projects import ProjectsService
from ...application.refresh import RefreshScheduler, ViewRefresher
from ...infrastructure.supabase.factory import SupabaseClientFactory
from .middleware import logging_middleware
from .errors import log_and_return_error_response
from .routes.dashboard import router as dashboard_router
from .routes.health import router as health_router
from .routes.monitoring import router as monitoring_router
from .routes.projects import router as projects_router


def create_app(
    settings: Settings,
    cache: Optional[TTLCache] = None,
    factory: Optional[SupabaseClientFactory] = None,
) -> FastAPI:
    """Creates and configures the FastAPI application instance.

    Wires the response cache, the Supabase client factory, the refresh
    scheduler and the query services onto ``app.state``. The scheduler's task
    group lives for the duration of the lifespan; background refreshes
    triggered by requests are spawned onto it.

    Args:
        settings: Configuration settings object
        cache: Response cache to use instead of a fresh one
        factory: Client factory to use instead of one built from ``settings``

    Returns:
        Fully configured FastAPI application instance
    """
    init_logging(settings)

    factory = factory or SupabaseClientFactory(settings)
    cache = cache or TTLCache(default_ttl_seconds=settings.cache_ttl_seconds)
    scheduler = RefreshScheduler(
        ViewRefresher(factory.service_client),
        interval_seconds=settings.refresh_interval,
        enabled=settings.refresh_enabled,
        run_on_startup=settings.run_refresh_on_startup,
    )
    resolver = PatchProjectResolver(trigger_refresh=scheduler.trigger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_info(
            LogRecord(
                event=LogEvent.STARTUP.value,
                message=f"{settings.app_name} {settings.app_version} starting",
                data={
                    "supabase_url": settings.supabase_url,
                    "cache_ttl_seconds": settings.cache_ttl_seconds,
                    "refresh_enabled": settings.refresh_enabled,
                    "refresh_interval_seconds": settings.refresh_interval,
                },
            )
        )
        await scheduler.start()
        try:
            yield
        finally:
            logging.info("Initiating application shutdown")
            try:
                await scheduler.stop()
                logging.info("Refresh scheduler stopped")
            except Exception as e:
                logging.error(f"Error stopping refresh scheduler: {str(e)}")
            finally:
                logging.info("Closing Supabase HTTP client")
                await factory.aclose()
                log_info(
                    LogRecord(
                        event=LogEvent.SHUTDOWN.value,
                        message=f"{settings.app_name} stopped",
                        data={"cache": cache.get_stats()},
                    )
                )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=None,
        redoc_url=None,
        description="Cached, authenticated read gateway for the projects dashboard.",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    app.state.settings = settings
    app.state.supabase = factory
    app.state.response_cache = cache
    app.state.refresh_scheduler = scheduler
    app.state.projects_service = ProjectsService(resolver)
    app.state.dashboard_service = DashboardService(resolver)

    app.middleware("http")(logging_middleware)

    logging.info(f"CORS enabled for origins: {settings.cors_origin}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=False,
        max_age=600,
    )

    app.include_router(health_router, tags=["Health"])
    app.include_router(projects_router, tags=["API"])
    app.include_router(dashboard_router, tags=["API"])
    app.include_router(monitoring_router, tags=["Monitoring"])

    @app.exception_handler(DashWorkerException)
    async def dashworker_exception_handler(request: Request, exc: DashWorkerException):
        return await log_and_return_error_response(
            request, exc.status_code, exc.public_message, caught_exception=exc
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        return await log_and_return_error_response(
            request,
            500,
            "An unexpected internal server error occurred.",
            caught_exception=exc,
        )

    return app
