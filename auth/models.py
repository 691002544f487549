"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these classes only own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TokenType(str, Enum):
    """The two token kinds. Any other ``type`` claim is rejected at verification."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class RefreshTokenRecord:
    """One outstanding refresh token for a user.

    Security design:
    - token_hash is SHA-512(raw_token). The raw token is never persisted, so a
      leaked database cannot be replayed against /refresh.
    - expires_at mirrors the token's own ``exp`` claim. It is re-checked
      against the wall clock on every use; a record past expiry is dead even
      before pruning removes it.
    """

    token_hash: str
    expires_at: datetime
    created_at: datetime


@dataclass
class User:
    """A registered account.

    email is stored trimmed and lower-cased; uniqueness is enforced on that form.
    password_hash is the self-describing PBKDF2 record from auth/passwords.py.

    version is the optimistic-concurrency counter. UserStore bumps it on every
    refresh-token write and refuses a write whose version is stale, so two
    racing rotations of one token cannot both succeed.

    refresh_tokens is kept in issuance order (oldest first).
    """

    email: str
    password_hash: str
    id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    updated_at: str | None = None
    version: int = 0
    refresh_tokens: list[RefreshTokenRecord] = field(default_factory=list)


@dataclass(frozen=True)
class Principal:
    """The identity resolved from a verified access token."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified payload of a signed token. Exists only inside the token string."""

    subject: str
    type: TokenType
    issued_at: int
    expires_at: int
    token_id: str | None = None  # "jti"


@dataclass(frozen=True)
class SignedToken:
    token: str
    expires_at: int  # UNIX seconds


@dataclass(frozen=True)
class AuthResult:
    """Outcome of register/login/refresh: a fresh token pair plus the account."""

    access_token: str
    refresh_token: str
    access_token_expires_at: int
    refresh_token_expires_at: int
    user: User
    token_type: str = "Bearer"
