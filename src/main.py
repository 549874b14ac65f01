import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.core.exceptions.base import register_exception_handlers
from src.api.core.middleware.logging import logging_middleware
from src.api.router import api_router
from src.cache.metrics_cache import MetricsCache
from src.database.connection import AsyncSessionLocal
from src.modules.billing.constants import PricingConfig
from src.modules.billing.stripe.ledger import LedgerReader
from src.modules.metrics.aggregator import MetricsAggregator
from src.utils.settings.app import AppSettings
from src.utils.settings.metrics import MetricsSettings
from src.utils.logger import setup_logging


is_production = AppSettings().ENVIRONMENT.upper() == "PROD"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger = setup_logging(is_production, AppSettings().LOG_LEVEL)
    logger.info("Starting membership metrics API...")
    AppSettings().validate_prod()

    app.state.session_factory = AsyncSessionLocal
    logger.info("Database session factory added to app state")

    metrics_settings = MetricsSettings()
    aggregator = MetricsAggregator(
        reader=LedgerReader(),
        session_factory=app.state.session_factory,
        pricing=PricingConfig.from_settings(),
        settings=metrics_settings,
    )
    app.state.metrics_cache = MetricsCache(
        aggregator.compute, ttl_seconds=metrics_settings.METRICS_CACHE_TTL_SECONDS
    )
    logger.info(
        "Metrics cache ready",
        ttl_seconds=metrics_settings.METRICS_CACHE_TTL_SECONDS,
    )

    yield

    # Shutdown
    logger.info("Shutting down membership metrics API...")


app = FastAPI(
    title="Membership Metrics API",
    description="Membership lifecycle reconciliation and revenue attribution",
    version=AppSettings().API_VERSION,
    lifespan=lifespan,
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
    openapi_url=None if is_production else "/openapi.json",
)

# Register global exception handlers
register_exception_handlers(app)

app_settings = AppSettings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.middleware("http")(logging_middleware)

app.include_router(api_router)


def run_dev_server():
    """Run development server with auto-reload."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=True, access_log=False
    )


def run_prod_server():
    """Run production server."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=False, access_log=False
    )
