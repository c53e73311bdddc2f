"""
Pizzeria POS — Health endpoint
"""
import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from pizzeria.core.config import get_settings
from pizzeria.core.redis_client import get_redis
from pizzeria.db.database import engine

settings = get_settings()
router = APIRouter(tags=["health"])


async def _ping_database() -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


@router.get("/health")
async def health_check():
    deps: dict[str, str] = {}
    healthy = True

    try:
        await asyncio.wait_for(_ping_database(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["database"] = "ok"
    except Exception as e:
        deps["database"] = f"error: {str(e)[:100]}"
        healthy = False

    try:
        redis = get_redis()
        await asyncio.wait_for(redis.ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["redis"] = "ok"
    except Exception as e:
        deps["redis"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        content={"status": "healthy" if healthy else "degraded",
                 "service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION,
                 "dependencies": deps},
        status_code=200 if healthy else 503,
    )
