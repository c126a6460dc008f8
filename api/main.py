#!/usr/bin/env python3
"""
Tariff Extraction API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import logging

from core.config import settings
from api.middleware.logging import LoggingMiddleware
from api.routers import extraction, health
from db.session import init_db

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the tariff tables on startup."""
    try:
        init_db()
    except Exception as e:
        logger.warning(f"Database initialization skipped: {e}")
    yield


app = FastAPI(
    title=settings.project_name,
    version=settings.version,
    description="Extracts, validates and reconciles tariff codes from customs documents",
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

app.include_router(health.router, prefix=settings.api_v1_prefix)
app.include_router(extraction.router, prefix=settings.api_v1_prefix)
logger.info("Health and extraction routers included with API prefix")


@app.get("/healthz")
async def root_health_check():
    """Root-level health endpoint for external monitors."""
    return await health.health_check()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
