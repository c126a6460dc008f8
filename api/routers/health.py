# WORKFLOW: Health check endpoints for monitoring and operational status.
# Used by: Load balancers, monitoring systems, operational dashboards
# Endpoints:
# 1. /healthz - Basic health check (always returns healthy)
# 2. /readyz - Readiness check with database and LLM connectivity
# 3. /livez - Liveness check for Kubernetes probes
#
# Readiness flow: Readiness check -> Database/LLM connectivity -> Ready/Not ready

from fastapi import APIRouter
import logging
from datetime import datetime, timezone

import ollama

from db.session import check_db_connection
from core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_llm_connection() -> bool:
    """Check that the Ollama host answers and lists models."""
    try:
        await ollama.AsyncClient(host=settings.ollama_url, timeout=5).list()
        return True
    except Exception as e:
        logger.error(f"LLM service health check failed: {e}")
        return False


@router.get("/healthz")
async def health_check():
    """
    Basic health check endpoint.

    Returns:
        Health status of the API
    """
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.version,
        "environment": settings.environment
    }


@router.get("/readyz")
async def readiness_check():
    """
    Readiness check endpoint.

    Checks the database connection and the extraction model host.

    Returns:
        Readiness status with detailed checks
    """
    checks = {
        "database": check_db_connection(),
        "llm_service": await check_llm_connection(),
    }
    is_ready = all(checks.values())

    return {
        "status": "ready" if is_ready else "not_ready",
        "timestamp": _now(),
        "checks": checks,
        "version": settings.version
    }


@router.get("/livez")
async def liveness_check():
    """
    Liveness check endpoint.

    Returns:
        Liveness status
    """
    return {
        "status": "alive",
        "timestamp": _now()
    }
