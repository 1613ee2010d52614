"""FastAPI application for the goalwatch tracker."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from goalwatch.config import get_settings
from goalwatch.engine import TrackingEngine
from goalwatch.routes.api import router as api_router
from goalwatch.security import limiter
from goalwatch.telemetry.sentry import init_sentry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Only activates if SENTRY_DSN is set
init_sentry(
    settings.SENTRY_DSN,
    environment=settings.SENTRY_ENVIRONMENT,
    traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting goalwatch...")
    engine = TrackingEngine.from_settings(settings)
    await engine.init()

    if not settings.BETSAPI_TOKEN:
        logger.warning("[STARTUP] BETSAPI_TOKEN not set: the in-play feed will be unavailable")
    if not engine.gateway.configured:
        logger.warning("[STARTUP] Telegram not configured: notifications will be refused")

    await engine.start(start_tracker=settings.AUTO_START_TRACKER)
    app.state.engine = engine
    logger.info(f"[STARTUP] Ready (tracker_running={engine.orchestrator.running})")

    yield

    logger.info("Shutting down...")
    await engine.stop()
    app.state.engine = None


app = FastAPI(
    title="goalwatch",
    description="Live eSoccer Asian goal line tracker with Telegram alerts",
    version="1.0.0",
    lifespan=lifespan,
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(api_router, prefix="/api")
