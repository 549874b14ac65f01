"""Membership metrics endpoints for the admin dashboard."""

import asyncio

from fastapi import APIRouter, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError

from src.api.core.decorators.admin import admin
from src.api.core.dependencies import MetricsCacheDep
from src.api.core.exceptions.base import MetricsException
from src.api.core.messages import APIResponse, MessageCode
from src.api.metrics.models import MembershipMetrics
from src.cache.metrics_cache import MetricsCache
from src.modules.billing.stripe.exceptions import LedgerReadError
from src.utils.logger import get_logger
from src.utils.settings.metrics import MetricsSettings

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/metrics", tags=["metrics"])


def _stale_or_raise(cache: MetricsCache, details: dict) -> MembershipMetrics:
    cached = cache.peek()
    if cached is None:
        raise MetricsException(
            MessageCode.METRICS_UNAVAILABLE,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
        )
    value, age = cached
    logger.warning("Serving stale metrics", age_seconds=round(age), **details)
    return value.model_copy(update={"stale": True})


@router.get("", response_model=APIResponse[MembershipMetrics])
@admin()
async def get_metrics(
    request: Request,
    cache: MetricsCacheDep,
    force: bool = Query(default=False, description="Bypass the cache"),
) -> APIResponse[MembershipMetrics]:
    """Current membership metrics, recomputed at most once per cache TTL."""
    timeout = MetricsSettings().METRICS_REQUEST_TIMEOUT_SECONDS
    try:
        metrics = await asyncio.wait_for(cache.get(force_refresh=force), timeout)
    except LedgerReadError as e:
        metrics = _stale_or_raise(cache, {"step": e.step})
    except asyncio.TimeoutError:
        # The recompute keeps running and fills the cache for the next caller
        metrics = _stale_or_raise(cache, {"description": "Metrics still computing"})
    except SQLAlchemyError as e:
        logger.error("Metrics database read failed", error=str(e))
        metrics = _stale_or_raise(cache, {"description": "Database unavailable"})

    return APIResponse.success(data=metrics)


@router.post("/invalidate", response_model=APIResponse[None])
@admin()
async def invalidate_metrics(
    request: Request,
    cache: MetricsCacheDep,
) -> APIResponse[None]:
    """Drop the cached metrics so the next read recomputes."""
    cache.invalidate()
    return APIResponse.success(message_code=MessageCode.METRICS_INVALIDATED)
