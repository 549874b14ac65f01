import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cache.metrics_cache import MetricsCache
from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    service: str
    status: Literal["healthy", "unhealthy", "degraded"]
    connected: bool
    details: dict
    error: str | None = None


@dataclass
class OverallHealthStatus:
    """Overall health status with individual service results."""

    status: Literal["healthy", "degraded", "unhealthy"]
    services: dict[str, HealthCheckResult]
    timestamp: str


class HealthService:
    """Service for performing health checks on various system components."""

    def __init__(self, db: AsyncSession, metrics_cache: MetricsCache | None):
        self.db = db
        self.metrics_cache = metrics_cache

    async def check_database_health(self) -> HealthCheckResult:
        """Database connection health check."""
        try:
            result = await self.db.execute(text("SELECT 1 as test"))
            test_value = result.scalar()

            return HealthCheckResult(
                service="database",
                status="healthy",
                connected=True,
                details={"test_query_result": test_value},
            )
        except Exception as e:
            logger.error(f"Database health check error: {e}")
            return HealthCheckResult(
                service="database",
                status="unhealthy",
                connected=False,
                details={},
                error=str(e),
            )

    async def check_metrics_cache_health(self) -> HealthCheckResult:
        """Report whether a metrics value is cached and how old it is.

        An empty or expired cache is only degraded: the next read recomputes.
        """
        if self.metrics_cache is None:
            return HealthCheckResult(
                service="metrics_cache",
                status="unhealthy",
                connected=False,
                details={},
                error="Metrics cache not initialised",
            )

        cached = self.metrics_cache.peek()
        if cached is None:
            return HealthCheckResult(
                service="metrics_cache",
                status="degraded",
                connected=True,
                details={"cached": False},
            )

        _, age = cached
        fresh = age < self.metrics_cache.ttl_seconds
        return HealthCheckResult(
            service="metrics_cache",
            status="healthy" if fresh else "degraded",
            connected=True,
            details={"cached": True, "age_seconds": round(age), "fresh": fresh},
        )

    async def run_all_checks(self) -> OverallHealthStatus:
        """Run all health checks in parallel and return overall status."""
        results = await asyncio.gather(
            self.check_database_health(), self.check_metrics_cache_health()
        )
        services = {result.service: result for result in results}

        overall_status: Literal["healthy", "degraded", "unhealthy"] = "healthy"
        for result in results:
            if result.status == "unhealthy":
                overall_status = "unhealthy"
            elif result.status == "degraded" and overall_status == "healthy":
                overall_status = "degraded"

        return OverallHealthStatus(
            status=overall_status,
            services=services,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
