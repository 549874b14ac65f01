from fastapi import APIRouter

from src.api.health.router import router as health_router
from src.api.metrics.router import router as metrics_router
from src.api.stripe.router import router as stripe_router

# Main API router
api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(stripe_router)
api_router.include_router(metrics_router)
