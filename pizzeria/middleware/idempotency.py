"""
Pizzeria POS — Idempotency Key Middleware

A server double-tapping "Send to kitchen" must not open two orders:
  - Cache hit  → return cached response immediately (no business logic)
  - Cache miss → execute handler, store response in Redis for 24h
Keys are scoped per actor so two devices cannot replay each other's orders.
"""
import json
import logging
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from pizzeria.core.config import get_settings
from pizzeria.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

IDEMPOTENCY_PREFIX = "idempotent:"
IDEMPOTENCY_METHODS = {"POST"}
IDEMPOTENCY_PATHS = {"/orders", "/orders/"}


class IdempotencyMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in IDEMPOTENCY_METHODS:
            return await call_next(request)

        if request.url.path not in IDEMPOTENCY_PATHS:
            return await call_next(request)

        idem_key = request.headers.get("Idempotency-Key")
        if not idem_key:
            return await call_next(request)

        actor = getattr(request.state, "actor", None)
        scope = actor.user_id if actor else "anonymous"
        cache_key = f"{IDEMPOTENCY_PREFIX}{scope}:{idem_key}"

        redis = get_redis()
        try:
            cached = await redis.get(cache_key)
        except Exception as exc:
            logger.warning("Idempotency cache unavailable, processing request: %s", exc)
            return await call_next(request)

        # Cache HIT → replay stored response
        if cached:
            data = json.loads(cached)
            return JSONResponse(
                content=data["body"],
                status_code=data["status_code"],
                headers={"X-Idempotency-Replay": "true"},
            )

        response = await call_next(request)

        body_bytes = b""
        async for chunk in response.body_iterator:
            body_bytes += chunk

        try:
            body = json.loads(body_bytes)
        except ValueError:
            body = body_bytes.decode("utf-8", errors="replace")

        # Only successful creations are replayed; failures may be retried for real
        if response.status_code < 300:
            try:
                await redis.setex(
                    cache_key,
                    settings.IDEMPOTENCY_KEY_TTL_SECONDS,
                    json.dumps({"body": body, "status_code": response.status_code}),
                )
            except Exception as exc:
                logger.warning("Could not store idempotent response %s: %s", cache_key, exc)

        return Response(
            content=body_bytes,
            status_code=response.status_code,
            media_type=response.media_type,
            headers=dict(response.headers),
        )
