"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.config import settings
from poolroute.core.database import get_db
from poolroute.core.metrics import update_service_health
from poolroute.core.rate_limit import RateLimits, limiter

router = APIRouter(tags=["health"])


@router.get("/health")
@limiter.limit(RateLimits.HEALTH)
async def health_check(request: Request) -> dict:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/health/detailed")
@limiter.limit(RateLimits.HEALTH)
async def detailed_health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Detailed health check including dependencies."""
    checks = {
        "api": "healthy",
        "database": "unknown",
    }

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"
    update_service_health("database", checks["database"] == "healthy")

    # Field action limiter backend
    field_limiter = getattr(request.app.state, "field_action_limiter", None)
    checks["rate_limiter"] = f"healthy ({settings.RATE_LIMIT_BACKEND})" if field_limiter else "disabled"

    overall = "healthy" if checks["database"] == "healthy" else "degraded"

    return {
        "status": overall,
        "version": settings.APP_VERSION,
        "checks": checks,
    }
