"""
Pizzeria POS — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from pizzeria.core.config import get_settings
from pizzeria.core.errors import PosError, pos_error_handler
from pizzeria.core.redis_client import close_redis
from pizzeria.db.database import engine, Base
from pizzeria.middleware.auth import ActorMiddleware
from pizzeria.middleware.idempotency import IdempotencyMiddleware
from pizzeria.middleware.rate_limiter import SlidingWindowRateLimiter
from pizzeria.api import (
    access,
    auth,
    health,
    kitchen,
    menu,
    notifications,
    orders,
    payments,
    reports,
    staff,
    tables,
)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (Alembic handles migrations in production)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    yield
    # Shutdown
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Pizzeria POS",
    description="Order lifecycle, table occupancy and role-based access for a restaurant point of sale.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production via env var
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Order matters: the last one added runs first, so the actor is known
# before idempotency keys are scoped to it
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(SlidingWindowRateLimiter)
app.add_middleware(ActorMiddleware)

# ── Errors ────────────────────────────────────────────────────────────────────
app.add_exception_handler(PosError, pos_error_handler)

# ── Prometheus Metrics ────────────────────────────────────────────────────────
if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth.router)
app.include_router(staff.router)
app.include_router(access.router)
app.include_router(menu.router)
app.include_router(orders.router)
app.include_router(kitchen.router)
app.include_router(tables.router)
app.include_router(payments.router)
app.include_router(reports.router)
app.include_router(notifications.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
