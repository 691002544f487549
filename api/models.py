"""
API request and response models for the Homi auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire names are camelCase (the mobile client's convention); Python attributes
stay snake_case via the alias generator. populate_by_name lets tests and
internal callers construct models with either spelling.

Request fields are Optional on purpose: a missing email or password is a
domain ValidationError (400) raised by AuthService, not a schema error.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from auth.models import AuthResult, User


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /api/v1/auth/register."""

    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(_CamelModel):
    """Request body for POST /api/v1/auth/login."""

    email: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(_CamelModel):
    """Request body for POST /api/v1/auth/refresh and /logout."""

    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserView(_CamelModel):
    """Public view of an account. Never includes the password hash or token records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        """Factory Method: the domain -> wire mapping lives next to the wire model."""
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenResponse(_CamelModel):
    """Envelope returned by register, login and refresh."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    token_type: str = "Bearer"
    access_token: str
    refresh_token: str
    access_token_expires_at: int
    refresh_token_expires_at: int
    user: UserView

    @classmethod
    def from_result(cls, result: AuthResult) -> "TokenResponse":
        return cls(
            token_type=result.token_type,
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            access_token_expires_at=result.access_token_expires_at,
            refresh_token_expires_at=result.refresh_token_expires_at,
            user=UserView.from_user(result.user),
        )


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user: UserView


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
