"""
API routes module.
"""

from fastapi import APIRouter

from poolroute.api.routes import (
    health,
    routes,
    schedule,
)

# Main API router (mounted at /api/v1)
api_router = APIRouter()

# Include health check
api_router.include_router(health.router)

# Weekly template administration
api_router.include_router(schedule.router)

# Generation, dispatch views and field actions
api_router.include_router(routes.router)
