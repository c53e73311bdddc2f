"""
Pizzeria POS — Auth and staff Pydantic schemas
"""
from pydantic import BaseModel, EmailStr, Field

from pizzeria.core.access_policy import RouteCategory
from pizzeria.models.user import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    role: UserRole
    home: str


class RefreshRequest(BaseModel):
    refresh_token: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class StaffCreateRequest(RegisterRequest):
    role: UserRole


class RoleChangeRequest(BaseModel):
    role: UserRole


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole
    is_active: bool

    model_config = {"from_attributes": True}


class AccessDecisionResponse(BaseModel):
    path: str
    allowed: bool
    category: RouteCategory
    redirect_to: str | None = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    dependencies: dict[str, str]
