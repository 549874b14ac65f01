"""Health check endpoints tests."""

from fastapi import status
from httpx import AsyncClient

from src.cache.metrics_cache import MetricsCache
from tests.utils.metrics import sample_metrics


async def test_liveness(public_client: AsyncClient):
    response = await public_client.get("/health/liveness")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "alive"


async def test_health_degraded_until_metrics_cached(public_client: AsyncClient):
    response = await public_client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["services"]["database"]["status"] == "healthy"
    assert data["services"]["metrics_cache"]["status"] == "degraded"
    assert data["status"] == "degraded"


async def test_health_healthy_with_fresh_metrics(app, public_client: AsyncClient):
    async def compute():
        return sample_metrics()

    cache = MetricsCache(compute, ttl_seconds=600)
    await cache.get()
    app.state.metrics_cache = cache

    response = await public_client.get("/health")

    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["metrics_cache"]["details"]["cached"] is True
