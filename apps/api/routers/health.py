"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings
from database import engine
from routers.deps import get_orchestrator
from services.llm import FallbackOrchestrator

router = APIRouter()


@router.get("/health")
async def health_check(orchestrator: FallbackOrchestrator = Depends(get_orchestrator)):
    """
    Overall system health: database, redis and which LLM providers are configured.
    """
    providers = orchestrator.registry.status()
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "llm_providers": providers,
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    try:
        r = redis.from_url(settings.REDIS_URL)
        await r.ping()
        await r.aclose()
        health_status["redis"] = "up"
    except Exception as e:
        health_status["redis"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    if not any(provider["enabled"] for provider in providers):
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check(orchestrator: FallbackOrchestrator = Depends(get_orchestrator)):
    """Ready once at least one LLM provider has credentials."""
    enabled = [spec.key for spec in orchestrator.registry.enabled_providers()]
    if not enabled:
        return JSONResponse(
            status_code=503,
            content={
                "ready": False,
                "missing": ["GROQ_API_KEY | GEMINI_API_KEY | COHERE_API_KEY | HF_API_KEY"],
            },
        )
    return {"ready": True, "providers": enabled}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
