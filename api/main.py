"""
FastAPI application initialization
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from api.routes import health, runs, reference
from core.config import settings
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.run_guard import run_guard
from ingestion.scheduler import ExtractionScheduler

setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    logger.info("Starting clinical extraction API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = ExtractionScheduler(guard=app.state.run_guard)
        scheduler.start()

    yield

    logger.info("Shutting down clinical extraction API")
    if scheduler is not None:
        scheduler.stop()


# Create FastAPI app
app = FastAPI(
    title="Clinical Extraction Pipeline API",
    description="Resumable symptom and HRSN extraction over clinical notes",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.run_guard = run_guard

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(runs.router)
app.include_router(reference.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Clinical Extraction Pipeline API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "runs": "/runs",
            "reference": "/reference/symptoms"
        }
    }
