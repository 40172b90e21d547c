"""
Health check router with database and Redis connectivity verification.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
import redis

from mesa.db.session import get_db
from mesa.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check - always returns OK."""
    return {"status": "ok"}


@router.get("/api/health")
def api_health_check(db: Session = Depends(get_db)):
    """
    Comprehensive health check verifying:
    - Database connectivity
    - Redis connectivity (locks and verification codes, if configured)

    Returns 200 if all critical services are healthy.
    Returns 503 if any critical service is down.
    """
    settings = get_settings()
    health_status = {
        "status": "ok",
        "services": {}
    }
    is_healthy = True

    try:
        db.execute(text("SELECT 1"))
        health_status["services"]["database"] = {"status": "ok"}
    except Exception as e:
        health_status["services"]["database"] = {"status": "error", "message": str(e)}
        is_healthy = False

    if not settings.REDIS_URL:
        health_status["services"]["redis"] = {"status": "disabled", "message": "Using in-process locks"}
    else:
        # Cross-worker locking depends on Redis once configured
        try:
            redis_client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
            redis_client.ping()
            health_status["services"]["redis"] = {"status": "ok"}
        except redis.ConnectionError:
            health_status["services"]["redis"] = {"status": "unavailable", "message": "Redis not connected"}
            is_healthy = False
        except Exception as e:
            health_status["services"]["redis"] = {"status": "error", "message": str(e)}
            is_healthy = False

    if not is_healthy:
        health_status["status"] = "unhealthy"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=health_status
        )

    return health_status
