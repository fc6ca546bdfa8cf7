"""
Health Check Endpoints

Endpoints:
- /health/live  - Basic liveness (app is running)
- /health/ready - Readiness check (model credentials configured)
"""

from datetime import datetime

from fastapi import APIRouter, HTTPException, status

from pagecraft.core.config import settings
from pagecraft.core.logging_config import logger


router = APIRouter(prefix="/health", tags=["Health Checks"])


@router.get("/live")
async def liveness():
    """Liveness probe - the process is up and serving requests"""
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/ready")
async def readiness():
    """Readiness probe - generation can reach the model provider"""
    if not settings.ANTHROPIC_API_KEY:
        logger.warning("[HealthCheck] ANTHROPIC_API_KEY not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "reason": "ANTHROPIC_API_KEY not configured"},
        )

    return {
        "status": "ready",
        "timestamp": datetime.utcnow().isoformat(),
        "protocol": settings.WIRE_PROTOCOL.value,
        "planner_model": settings.CLAUDE_PLANNER_MODEL,
        "worker_model": settings.CLAUDE_WORKER_MODEL,
    }
