"""
Pizzeria POS — Login attempt limiter (Redis sorted-set sliding window)

Guards POST /auth/login per account. Each attempt is a member of
`login-attempts:<email>` scored by its timestamp; members older than the
window are trimmed before counting. A successful login clears the window
so earlier typos do not count against the next shift.
"""
import json
import logging
import time
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest

from pizzeria.core.config import get_settings
from pizzeria.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

ATTEMPTS_PREFIX = "login-attempts:"
LOGIN_PATHS = ("/auth/login", "/auth/login/")


def login_identity(body: bytes, client_host: str) -> str:
    """Lower-cased email from the login body; the client address when there is none."""
    try:
        email = json.loads(body).get("email")
    except (ValueError, AttributeError):
        email = None
    return str(email or client_host).lower()


async def attempts_in_window(redis, key: str, now: float) -> int:
    """Record this attempt and return how many came before it inside the window."""
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    pipe = redis.pipeline()
    pipe.zremrangebyscore(key, "-inf", now - window)
    pipe.zcard(key)
    pipe.zadd(key, {repr(now): now})
    pipe.expire(key, window + 1)
    _, earlier, _, _ = await pipe.execute()
    return earlier


def too_many_attempts() -> JSONResponse:
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    return JSONResponse(
        status_code=429,
        content={
            "detail": (
                f"Too many sign-in attempts for this account. Try again in {window} seconds."
            ),
            "max_attempts": settings.RATE_LIMIT_MAX_ATTEMPTS,
            "retry_after_seconds": window,
        },
        headers={"Retry-After": str(window)},
    )


class SlidingWindowRateLimiter(BaseHTTPMiddleware):
    """Lets the login through untouched when Redis is unreachable."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method != "POST" or request.url.path not in LOGIN_PATHS:
            return await call_next(request)

        body = await request.body()
        client_host = request.client.host if request.client else "unknown"
        key = f"{ATTEMPTS_PREFIX}{login_identity(body, client_host)}"

        redis = get_redis()
        try:
            earlier = await attempts_in_window(redis, key, time.time())
        except Exception as exc:
            logger.warning("Login limiter unavailable, allowing attempt: %s", exc)
            earlier = None

        if earlier is not None and earlier >= settings.RATE_LIMIT_MAX_ATTEMPTS:
            logger.warning("Login attempts exhausted for %s", key)
            return too_many_attempts()

        # The body was consumed above; hand downstream a fresh receive channel
        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(StarletteRequest(request.scope, receive))

        if earlier is not None:
            if response.status_code == 200:
                try:
                    await redis.delete(key)
                except Exception as exc:
                    logger.warning("Could not clear login attempts for %s: %s", key, exc)
            else:
                remaining = max(settings.RATE_LIMIT_MAX_ATTEMPTS - earlier - 1, 0)
                response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
