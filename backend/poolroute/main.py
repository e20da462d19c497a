"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from poolroute.core.config import settings
from poolroute.core.database import init_db, close_db, check_db_connection
from poolroute.core.rate_limit import limiter, rate_limit_exceeded_handler
from poolroute.core.rate_limiter import create_field_action_limiter
from poolroute.core.logging import setup_logging, RequestLoggingMiddleware
from poolroute.core.metrics import PrometheusMiddleware, metrics_endpoint, update_service_health
from poolroute.core.exceptions import register_exception_handlers
from poolroute.api.routes import api_router

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL if not settings.DEBUG else "DEBUG",
    json_format=not settings.DEBUG,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting application...")
    settings.validate_production_settings()
    await init_db()

    db_healthy = await check_db_connection()
    update_service_health("database", db_healthy)
    if db_healthy:
        logger.info("Database: healthy")
    else:
        logger.warning("Database: unhealthy")

    logger.info("Application started successfully")
    yield
    # Shutdown
    logger.info("Shutting down application...")
    await app.state.field_action_limiter.close()
    await close_db()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Recurring route scheduling and dispatch for pool service companies",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        lifespan=lifespan,
    )

    # Standardized exception handlers (must be registered first)
    register_exception_handlers(app)

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.state.field_action_limiter = create_field_action_limiter()

    # Prometheus metrics middleware
    if settings.METRICS_ENABLED:
        app.add_middleware(PrometheusMiddleware)

    # Request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Metrics endpoint (outside API prefix)
    if settings.METRICS_ENABLED:
        app.add_api_route(
            settings.METRICS_PATH,
            metrics_endpoint,
            methods=["GET"],
            include_in_schema=False,
        )

    logger.info(f"Application configured: {settings.APP_NAME} v{settings.APP_VERSION}")

    return app


app = create_app()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None,
    }
