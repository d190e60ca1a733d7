"""
Taskflow Backend - Main FastAPI Application

Wires the request infrastructure together:
- Shared cache with Redis and local fallback
- Per-policy rate limiting
- Performance monitoring
- Per-route-family middleware pipelines
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as FastAPIRequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.endpoints.health import router as health_router
from .api.endpoints.monitoring import router as monitoring_router
from .constants import APP_NAME, APP_VERSION
from .core.config import Settings, get_settings
from .core.exceptions import RequestValidationError, from_http_status
from .core.logging import configure_logging
from .middleware.pipeline import PipelineMiddleware
from .middleware.stacks import (
    api_pipeline,
    auth_pipeline,
    build_middleware_stack,
    public_pipeline,
    search_pipeline,
    upload_pipeline,
)
from .services.container import InfrastructureServices, build_services
from .services.maintenance import BackgroundMaintenance

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[InfrastructureServices] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the environment)
        services: Pre-built service container; built from ``settings`` when
            omitted
    """
    settings = settings or get_settings()
    configure_logging(settings)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        maintenance = BackgroundMaintenance(services)
        await maintenance.start()

        logger.info(
            "Taskflow API started",
            version=APP_VERSION,
            environment=settings.ENVIRONMENT,
            cache_backend=services.cache.backend_status()["backend"],
        )

        yield

        logger.info("Shutting down Taskflow API")
        try:
            await maintenance.stop()
            await services.close()
            logger.info("Application shutdown completed")
        except Exception as e:
            logger.error("Error during application shutdown", error=str(e))

    app = FastAPI(
        title=f"{APP_NAME} API",
        description="Task management backend request infrastructure",
        version=APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.startup_time = time.time()

    # Framework errors are re-raised so the pipeline's error boundary
    # produces the response and records the metric
    @app.exception_handler(FastAPIRequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: FastAPIRequestValidationError
    ):
        errors = [
            {
                "loc": list(error.get("loc", ())),
                "msg": error.get("msg"),
                "type": error.get("type"),
            }
            for error in exc.errors()
        ]
        raise RequestValidationError(
            message=f"{len(errors)} validation error(s)",
            details={"errors": errors},
        ) from exc

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else None
        raise from_http_status(exc.status_code, detail) from exc

    # Pipelines run inside CORS so preflight requests are answered first
    app.add_middleware(
        PipelineMiddleware,
        default=api_pipeline(services),
        routes=[
            ("/api/v1/auth", auth_pipeline(services)),
            ("/api/v1/uploads", upload_pipeline(services)),
            ("/api/v1/search", search_pipeline(services)),
            ("/api/v1/monitoring", build_middleware_stack(services, enable_caching=False)),
            ("/health", public_pipeline(services, enable_caching=False)),
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(monitoring_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": f"{APP_NAME} API",
            "version": APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
