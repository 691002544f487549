"""
auth/errors.py -- Exception taxonomy for the authentication core.

Every exception carries a public ``message`` that is safe to show a client.
str(exc) may hold internal detail (which check failed) and is meant for logs
only. The api/ layer maps each class to an HTTP status; auth/ itself knows
nothing about HTTP.

  AuthError
    ValidationError       -- missing/short password, missing email        (400)
    ConflictError         -- email already registered                     (409)
    AuthenticationError   -- bad credentials, missing/invalid token       (401)
      TokenError          -- TokenCodec.verify() failure, one per kind
    NotFoundError         -- principal vanished after authentication      (404)
    InternalError         -- persistence failure, exhausted retries       (500)

Token failure kinds exist for logging and tests. Callers must treat them all
as one authentication failure and never echo the kind to a client.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all expected failures raised by auth/."""

    message = "Authentication service error."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(detail or self.message)


class ValidationError(AuthError):
    message = "Invalid request."


class ConflictError(AuthError):
    message = "Resource already exists."


class AuthenticationError(AuthError):
    message = "Authentication required."


class NotFoundError(AuthError):
    message = "Not found."


class InternalError(AuthError):
    message = "An unexpected error occurred."


# ---------------------------------------------------------------------------
# Token verification failures
# ---------------------------------------------------------------------------


class TokenError(AuthenticationError):
    """A token failed TokenCodec.verify(). ``kind`` names the failed check."""

    kind = "invalid"
    message = "Invalid or expired token."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail=detail or self.kind)


class MalformedTokenError(TokenError):
    kind = "malformed"


class UnsupportedHeaderError(TokenError):
    kind = "unsupported_header"


class BadSignatureError(TokenError):
    kind = "bad_signature"


class WrongTokenTypeError(TokenError):
    kind = "wrong_type"


class TokenExpiredError(TokenError):
    kind = "expired"
