"""
auth/dependencies.py -- Bearer authentication and FastAPI Depends() helpers.

BearerAuthenticator turns a raw Authorization header into a Principal:

  1. header must be present and start with "Bearer "
  2. the remainder, trimmed, must verify as an *access* token
  3. the token subject must still exist in the UserStore

Every failure raises AuthenticationError. The failed check is logged here and
nowhere else; get_current_principal() converts any failure into the same 401
body, so a client cannot tell a bad signature from an expired token or a
deleted account.

Layer rule: no imports from api/ or core/.
  This module may import from fastapi (for Depends/HTTPException/Request)
  because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import AuthenticationError, TokenError
from auth.models import Principal, TokenType
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec

logger = logging.getLogger("homi.auth")

_BEARER_PREFIX = "Bearer "


class BearerAuthenticator:
    """Resolve the calling principal from an access token.

    Usage:
        authenticator = BearerAuthenticator(TokenCodec(), store, settings.access_token_secret)
        principal = authenticator.authenticate(request.headers.get("Authorization"))
    """

    def __init__(self, codec: TokenCodec, store: UserStore, access_token_secret: str) -> None:
        self._codec = codec
        self._store = store
        self._access_secret = access_token_secret

    def authenticate(self, authorization: str | None) -> Principal:
        if not authorization or not authorization.startswith(_BEARER_PREFIX):
            raise AuthenticationError(detail="missing bearer header")
        token = authorization[len(_BEARER_PREFIX) :].strip()
        try:
            claims = self._codec.verify(token, self._access_secret, TokenType.ACCESS)
        except TokenError as exc:
            logger.info("Rejected access token: %s", exc.kind)
            raise
        user = self._store.get_by_id(claims.subject)
        if user is None:
            logger.info("Access token subject %s no longer exists", claims.subject)
            raise AuthenticationError(detail="unknown subject")
        return Principal(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService wired into app.state by the lifespan."""
    return request.app.state.auth_service


def get_current_principal(request: Request) -> Principal:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    authenticator: BearerAuthenticator = request.app.state.authenticator
    try:
        return authenticator.authenticate(request.headers.get("Authorization"))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Invalid or expired token."},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
