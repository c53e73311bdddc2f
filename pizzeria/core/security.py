"""
Pizzeria POS — Password hashing, JWT issuing and actor extraction
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt, JWTError
from passlib.context import CryptContext

from pizzeria.core.access_policy import ActorContext
from pizzeria.core.config import get_settings
from pizzeria.models.user import User, UserRole

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ─── Password Hashing ─────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ─── JWT Token Generation ──────────────────────────────────────────────────────

def _encode(data: dict[str, Any], token_type: str, lifetime: timedelta) -> str:
    payload = data.copy()
    payload.update({
        "exp": datetime.now(tz=timezone.utc) + lifetime,
        "type": token_type,
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: dict[str, Any]) -> str:
    return _encode(data, "access", timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))


def create_refresh_token(data: dict[str, Any]) -> str:
    return _encode(data, "refresh", timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS))


def token_claims(user: User) -> dict[str, Any]:
    return {"sub": user.id, "email": user.email, "role": UserRole(user.role).value}


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def actor_from_token(token: str) -> ActorContext:
    """
    Build the request actor from an access token.
    Raises JWTError for bad signatures, expiry, refresh tokens or unknown roles.
    """
    claims = decode_token(token)
    if claims.get("type") != "access":
        raise JWTError("Not an access token")
    try:
        role = UserRole(claims["role"])
        user_id = claims["sub"]
    except (KeyError, ValueError) as exc:
        raise JWTError(f"Malformed claims: {exc}") from exc
    return ActorContext(user_id=user_id, role=role, email=claims.get("email"))
