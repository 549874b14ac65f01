from typing import Annotated, AsyncGenerator

from fastapi import Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.exceptions.base import MetricsException
from src.api.core.messages import MessageCode
from src.cache.metrics_cache import MetricsCache
from src.modules.events.ingestion import EventIngestionService


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def get_event_ingestion_service(
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> EventIngestionService:
    """Get event ingestion service with database session."""
    return EventIngestionService(db)


async def get_metrics_cache(request: Request) -> MetricsCache:
    """Process-wide metrics cache created in the app lifespan."""
    cache = getattr(request.app.state, "metrics_cache", None)
    if cache is None:
        raise MetricsException(
            MessageCode.METRICS_UNAVAILABLE, status.HTTP_503_SERVICE_UNAVAILABLE
        )
    return cache


AsyncSessionDep = Annotated[AsyncSession, Depends(get_db_session)]
EventIngestionServiceDep = Annotated[
    EventIngestionService, Depends(get_event_ingestion_service)
]
MetricsCacheDep = Annotated[MetricsCache, Depends(get_metrics_cache)]
