"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; 201 + token pair
  POST /api/v1/auth/login      -- password login; 200 + token pair
  POST /api/v1/auth/refresh    -- rotate a refresh token; 200 + new pair
  POST /api/v1/auth/logout     -- revoke a refresh token; always 200
  GET  /api/v1/auth/me         -- current user (requires Bearer access token)

Security:
  [H2] register and login are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries tokens.

Threading: register and login are plain ``def`` endpoints. PBKDF2 is CPU-bound
and FastAPI runs sync endpoints on its worker thread pool, so a slow hash does
not stall the event loop for unrelated requests. refresh/logout/me never hash
and stay ``async``.

Domain errors (auth.errors.AuthError) propagate to the handler in api/main.py,
which maps them to status codes with a uniform error envelope.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import auth_rate_limit, limiter
from api.models import (
    LoginRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserView,
)
from auth.dependencies import get_auth_service, get_current_principal
from auth.models import Principal
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:  public, rate limited
# - POST /api/v1/auth/login:     public, rate limited
# - POST /api/v1/auth/refresh:   public -- the refresh token is the credential
# - POST /api/v1/auth/logout:    public -- best effort, never fails
# - GET  /api/v1/auth/me:        requires Bearer access token (get_current_principal)
router = APIRouter()


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"  # [M5]


@limiter.limit(auth_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> TokenResponse:
    """Create an account and return its first access/refresh pair."""
    service: AuthService = get_auth_service(request)
    result = service.register(body.email, body.password, body.first_name, body.last_name)
    _no_store(response)
    return TokenResponse.from_result(result)


@limiter.limit(auth_rate_limit)  # [H2]
@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, response: Response, body: LoginRequest) -> TokenResponse:
    """Authenticate with email and password.

    Returns the same 401 body for an unknown email and a wrong password.
    """
    service: AuthService = get_auth_service(request)
    result = service.login(body.email, body.password)
    _no_store(response)
    return TokenResponse.from_result(result)


@router.post("/auth/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Redeem a refresh token. The presented token is dead after this call."""
    result = service.refresh(body.refresh_token)
    _no_store(response)
    return TokenResponse.from_result(result)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Revoke a refresh token if it is valid. Always answers 200.

    The body is parsed by hand so that a missing or non-JSON body is treated
    like an unknown token instead of a 422.
    """
    try:
        payload = json.loads(await request.body() or b"{}")
    except (ValueError, RecursionError):
        payload = {}
    raw_token = payload.get("refreshToken") if isinstance(payload, dict) else None
    service.logout(raw_token if isinstance(raw_token, str) else None)
    return MessageResponse(message="Logged out")


@router.get("/auth/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    """Return the authenticated user's public profile."""
    user = service.get_current_user(principal)
    return MeResponse(user=UserView.from_user(user))
