"""
auth/service.py -- Register / login / refresh / logout orchestration.

AuthService composes PasswordHasher, TokenCodec, RefreshTokenStore and
UserStore. It is deliberately thin, but the refresh rotation rule lives here
and is part of the security contract:

  A refresh token authenticates at most one refresh() call. Redemption
  revokes its record and issues a new pair in the same version-checked save;
  a second redemption finds no record and fails with AuthenticationError.

Every refresh-token change follows the same optimistic cycle (_update_tokens):

  load user -> apply change in memory -> mint pair -> save (version-checked)
        ^                                               |
        +---------- ConcurrentUpdateError --------------+

A retry re-runs the whole change against fresh state. For refresh() that
means re-checking that the token is still recorded, so when two requests
race on one token the loser reloads, finds the record gone and gets a 401.

Security:
  [C1] login() runs one PBKDF2 verification even for an unknown email
       (against a dummy record with the live parameters), so response time
       does not reveal whether an account exists. Both failures return the
       same "Invalid credentials" message.

  Persistence failures are logged with traceback here and re-raised as
  InternalError; callers never see SQL or parameters.

Layer rule: no imports from api/ or core/ (except from_settings, which reads
a Settings object handed to it).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AuthenticationError,
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    TokenError,
    ValidationError,
)
from auth.models import AuthResult, Principal, TokenClaims, TokenType, User
from auth.passwords import PasswordHasher
from auth.refresh_tokens import RefreshTokenStore
from auth.store import ConcurrentUpdateError, UserStore
from auth.tokens import TokenCodec

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("homi.auth")

MIN_PASSWORD_LENGTH = 8
_MAX_UPDATE_ATTEMPTS = 3

_INVALID_CREDENTIALS = "Invalid credentials"
_INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"


def _normalize_email(email: str | None) -> str:
    return email.strip().lower() if isinstance(email, str) else ""


def _clean_name(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


@contextmanager
def _internal_errors(operation: str):
    """Turn unexpected persistence failures into InternalError at the service boundary."""
    try:
        yield
    except AuthError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("%s failed on a persistence error", operation)
        raise InternalError() from exc


class AuthService:
    """Authentication use cases over one UserStore.

    Usage:
        service = AuthService.from_settings(get_settings(), UserStore())
        result = service.register("a@b.com", "Password123!")
        rotated = service.refresh(result.refresh_token)
    """

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
        refresh_tokens: RefreshTokenStore,
        access_token_secret: str,
        refresh_token_secret: str,
        access_token_ttl: int,
        refresh_token_ttl: int,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._codec = codec
        self._refresh_tokens = refresh_tokens
        self._access_secret = access_token_secret
        self._refresh_secret = refresh_token_secret
        self._access_ttl = access_token_ttl
        self._refresh_ttl = refresh_token_ttl
        # [C1] built here so every unknown-email login costs exactly one PBKDF2 run
        self._dummy_hash = hasher.hash("homi_timing_dummy")

    @classmethod
    def from_settings(cls, settings: Settings, store: UserStore, codec: TokenCodec | None = None) -> AuthService:
        return cls(
            store=store,
            hasher=PasswordHasher(
                iterations=settings.auth_pbkdf2_iterations,
                digest=settings.auth_pbkdf2_digest,
                key_length=settings.auth_pbkdf2_key_length,
            ),
            codec=codec or TokenCodec(),
            refresh_tokens=RefreshTokenStore(max_tokens=settings.max_refresh_tokens),
            access_token_secret=settings.access_token_secret,
            refresh_token_secret=settings.refresh_token_secret,
            access_token_ttl=settings.access_token_ttl,
            refresh_token_ttl=settings.refresh_token_ttl,
        )

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    def register(
        self,
        email: str | None,
        password: str | None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> AuthResult:
        """Create an account and return its first token pair.

        Raises ValidationError (missing email/password, short password) or
        ConflictError (email already registered).
        """
        normalized = _normalize_email(email)
        if not normalized or not password:
            raise ValidationError("Email and password are required")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        with _internal_errors("register"):
            if self._store.get_by_email(normalized) is not None:
                raise ConflictError("Email is already registered")
            user = User(
                email=normalized,
                password_hash=self._hasher.hash(password),
                first_name=_clean_name(first_name),
                last_name=_clean_name(last_name),
            )
            try:
                user_id = self._store.create_user(user)
            except IntegrityError as exc:
                raise ConflictError("Email is already registered") from exc
            logger.info("Registered user %s", user_id)
            return self._update_tokens(user_id, _keep)

    def login(self, email: str | None, password: str | None) -> AuthResult:
        """Verify credentials and return a new token pair.

        Unknown email and wrong password are indistinguishable to the caller [C1].
        """
        normalized = _normalize_email(email)
        if not normalized or not password:
            raise ValidationError("Email and password are required")

        with _internal_errors("login"):
            user = self._store.get_by_email(normalized)
            if user is None:
                # Equalize timing -- do NOT return before running PBKDF2 [C1]
                self._hasher.verify(password, self._dummy_hash)
                raise AuthenticationError(_INVALID_CREDENTIALS)
            if not self._hasher.verify(password, user.password_hash):
                logger.info("Failed login for user %s", user.id)
                raise AuthenticationError(_INVALID_CREDENTIALS)
            return self._update_tokens(user.id, _keep, missing_user_message=_INVALID_CREDENTIALS)

    def refresh(self, raw_refresh_token: str | None) -> AuthResult:
        """Redeem a refresh token for a new pair. The redeemed token is dead afterwards."""
        if not raw_refresh_token:
            raise ValidationError("refreshToken is required")
        claims = self._verify_refresh_token(raw_refresh_token)

        def redeem(user: User) -> None:
            if not self._refresh_tokens.is_valid(user, raw_refresh_token):
                logger.info("Refresh token for user %s is not active (rotated, revoked or expired)", user.id)
                raise AuthenticationError(_INVALID_REFRESH_TOKEN)
            self._refresh_tokens.revoke(user, raw_refresh_token)

        with _internal_errors("refresh"):
            return self._update_tokens(claims.subject, redeem, missing_user_message=_INVALID_REFRESH_TOKEN)

    def logout(self, raw_refresh_token: str | None) -> None:
        """Revoke a refresh token, best effort.

        Never raises. A missing, malformed, foreign or already-revoked token
        is a no-op, so logout is idempotent and safe to call with anything.
        """
        try:
            claims = self._verify_refresh_token(raw_refresh_token or "")
            for _ in range(_MAX_UPDATE_ATTEMPTS):
                user = self._store.get_by_id(claims.subject)
                if user is None or not self._refresh_tokens.revoke(user, raw_refresh_token):
                    return
                try:
                    self._store.save_refresh_tokens(user)
                except ConcurrentUpdateError:
                    continue
                logger.info("Revoked refresh token for user %s", user.id)
                return
        except Exception:  # noqa: BLE001
            logger.debug("Logout discarded a failure", exc_info=True)

    def get_current_user(self, principal: Principal) -> User:
        """Reload the principal's account. Raises NotFoundError if it vanished."""
        with _internal_errors("get_current_user"):
            user = self._store.get_by_id(principal.id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def issue_pair(self, user: User) -> AuthResult:
        """Prune expired records, mint an access/refresh pair and record the refresh token.

        Mutates user.refresh_tokens in memory only; the caller saves.
        """
        self._refresh_tokens.prune_expired(user)
        access = self._codec.sign(user.id, TokenType.ACCESS, self._access_secret, self._access_ttl)
        refresh = self._codec.sign(user.id, TokenType.REFRESH, self._refresh_secret, self._refresh_ttl)
        self._refresh_tokens.issue(
            user,
            refresh.token,
            datetime.fromtimestamp(refresh.expires_at, tz=timezone.utc),
        )
        return AuthResult(
            access_token=access.token,
            refresh_token=refresh.token,
            access_token_expires_at=access.expires_at,
            refresh_token_expires_at=refresh.expires_at,
            user=user,
        )

    def _update_tokens(
        self,
        user_id: str,
        change: Callable[[User], None],
        missing_user_message: str = _INVALID_REFRESH_TOKEN,
    ) -> AuthResult:
        """Apply change, issue a pair and save, retrying on a concurrent write."""
        for attempt in range(1, _MAX_UPDATE_ATTEMPTS + 1):
            user = self._store.get_by_id(user_id)
            if user is None:
                raise AuthenticationError(missing_user_message)
            change(user)
            result = self.issue_pair(user)
            try:
                self._store.save_refresh_tokens(user)
            except ConcurrentUpdateError:
                logger.info("Concurrent token update for user %s (attempt %d)", user_id, attempt)
                continue
            return result
        logger.error("Gave up updating tokens for user %s after %d attempts", user_id, _MAX_UPDATE_ATTEMPTS)
        raise InternalError()

    def _verify_refresh_token(self, raw_refresh_token: str) -> TokenClaims:
        try:
            return self._codec.verify(raw_refresh_token, self._refresh_secret, TokenType.REFRESH)
        except TokenError as exc:
            logger.info("Rejected refresh token: %s", exc.kind)
            raise AuthenticationError(_INVALID_REFRESH_TOKEN) from exc


def _keep(user: User) -> None:
    """No-op change for flows that only add a pair (register, login)."""
