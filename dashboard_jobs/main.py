from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from dashboard_jobs.config.logging import get_logger, setup_logging
from dashboard_jobs.config.settings import Settings, settings
from dashboard_jobs.core.exceptions import (
    DashboardJobsError,
    RequestContextMiddleware,
    dashboard_jobs_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from dashboard_jobs.healthz import router as health_router
from dashboard_jobs.infra.database import close_database
from dashboard_jobs.infra.redis import close_api_redis
from dashboard_jobs.jobs.routes import router as jobs_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Connections are opened lazily by the dependencies; close them on shutdown."""
    logger.info("Job API started", version=app.version)
    yield
    await close_api_redis()
    await close_database()
    logger.info("Job API stopped")


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Create the producer and inspection API."""
    app_settings = app_settings or settings
    setup_logging(app_settings)

    app = FastAPI(
        title=app_settings.app_name,
        description="Enqueue and inspection API for dashboard background jobs",
        version=app_settings.version,
        debug=app_settings.debug,
        lifespan=lifespan,
        openapi_url="/v1/openapi.json" if app_settings.debug else None,
        docs_url="/v1/docs" if app_settings.debug else None,
    )

    app.add_middleware(RequestContextMiddleware)

    # Producers run on other hosts only in development
    if app_settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    app.add_exception_handler(DashboardJobsError, dashboard_jobs_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dashboard_jobs.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
