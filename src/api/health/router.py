"""Health check endpoints for debugging and monitoring."""

from fastapi import APIRouter, Request

from src.api.core.dependencies import AsyncSessionDep
from src.modules.health.service import HealthService, OverallHealthStatus

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(request: Request, db: AsyncSessionDep) -> OverallHealthStatus:
    """Database and metrics cache status."""
    health_service = HealthService(db, getattr(request.app.state, "metrics_cache", None))
    return await health_service.run_all_checks()


@router.get("/liveness")
async def liveness_check():
    """Simple liveness check - indicates if service is running."""
    return {"status": "alive", "service": "membership-metrics-api"}
