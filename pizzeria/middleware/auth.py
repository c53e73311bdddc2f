"""
Pizzeria POS — Actor extraction middleware

Decodes the Bearer token when one is sent and attaches the resulting
ActorContext to request.state.actor (None for anonymous visitors).
Whether an anonymous or authenticated actor may do something is decided
per route by the access policy, not here.
"""
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from jose import JWTError

from pizzeria.core.security import actor_from_token


class ActorMiddleware(BaseHTTPMiddleware):
    """Returns 401 for malformed, forged or expired tokens; never for a missing one."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.actor = None
        if request.method == "OPTIONS":
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return await call_next(request)

        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid Authorization header. Expected: Bearer <token>"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        token = auth_header.split(" ", 1)[1]
        try:
            request.state.actor = actor_from_token(token)
        except JWTError as exc:
            return JSONResponse(
                status_code=401,
                content={"detail": f"Invalid or expired JWT: {str(exc)}"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)
