"""
Video Sensitivity API - FastAPI Backend
Main application entry point with health check and API routing.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import health, auth, media, events
from services.media_queue import recover_stalled_media_items

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting Video Sensitivity API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema verified.")
        except Exception as e:
            logger.warning("Database bootstrap skipped: %s", e)
    try:
        recovered = await recover_stalled_media_items(settings.STALLED_JOB_MAX_AGE_MINUTES)
        if recovered:
            logger.info("Marked %s stalled media items as failed after startup.", recovered)
    except Exception as exc:
        logger.warning("Stalled media recovery skipped: %s", exc)
    yield
    # Shutdown
    await engine.dispose()
    logger.info("Shutting down API...")


app = FastAPI(
    title="Video Sensitivity API",
    description="Upload videos, track processing progress and review sensitivity verdicts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(media.router, prefix="/media", tags=["Media"])
app.include_router(events.router, prefix="/events", tags=["Events"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Video Sensitivity API",
        "version": "0.1.0",
        "status": "running"
    }
