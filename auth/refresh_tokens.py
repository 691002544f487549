"""
auth/refresh_tokens.py -- Per-user refresh-token bookkeeping.

RefreshTokenStore works on the record list of an already-loaded User, in
memory. It never talks to the database: the caller persists the result with
UserStore.save_refresh_tokens(), whose version check turns the whole
load -> mutate -> save cycle into one optimistic transaction.

Invariants kept here:
  - at most max_tokens records per user; the oldest are evicted first
  - no two records share a token hash
  - a record is trusted only while expires_at > now

Only SHA-512(raw_token) is stored. Refresh tokens carry 128+ bits of signed,
unpredictable content, so a fast unsalted hash is enough to make a database
dump useless for replay.

Layer rule: stdlib only (plus auth.models).
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Callable

from auth.models import RefreshTokenRecord, User

DEFAULT_MAX_REFRESH_TOKENS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshTokenStore:
    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_REFRESH_TOKENS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        self.max_tokens = max_tokens
        self._clock = clock

    @staticmethod
    def hash_token(raw_token: str) -> str:
        """Return the SHA-512 hex digest stored in place of the raw token."""
        return hashlib.sha512(raw_token.encode("utf-8")).hexdigest()

    def prune_expired(self, user: User) -> int:
        """Drop every record with expires_at <= now. Returns the number removed."""
        now = self._clock()
        kept = [r for r in user.refresh_tokens if r.expires_at > now]
        removed = len(user.refresh_tokens) - len(kept)
        user.refresh_tokens = kept
        return removed

    def issue(self, user: User, raw_token: str, expires_at: datetime) -> RefreshTokenRecord:
        """Record raw_token for user, evicting the oldest records beyond max_tokens."""
        token_hash = self.hash_token(raw_token)
        record = RefreshTokenRecord(token_hash=token_hash, expires_at=expires_at, created_at=self._clock())
        records = [r for r in user.refresh_tokens if r.token_hash != token_hash]
        records.append(record)
        user.refresh_tokens = records[-self.max_tokens :]
        return record

    def is_valid(self, user: User, raw_token: str) -> bool:
        """True if raw_token is recorded for user and its record has not expired."""
        token_hash = self.hash_token(raw_token)
        now = self._clock()
        return any(r.token_hash == token_hash and r.expires_at > now for r in user.refresh_tokens)

    def revoke(self, user: User, raw_token: str) -> bool:
        """Remove raw_token's record. Returns False (not an error) if it was absent."""
        token_hash = self.hash_token(raw_token)
        kept = [r for r in user.refresh_tokens if r.token_hash != token_hash]
        revoked = len(kept) != len(user.refresh_tokens)
        user.refresh_tokens = kept
        return revoked
