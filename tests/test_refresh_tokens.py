"""Unit tests for auth/refresh_tokens.py -- in-memory refresh-token bookkeeping.

Covers:
- only the SHA-512 hash of the raw token is recorded
- issue() keeps at most max_tokens records, evicting oldest first
- issue() never records the same hash twice
- is_valid() requires a recorded, unexpired record
- prune_expired() drops records at or past expiry
- revoke() removes a record and is a no-op for unknown tokens
"""

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from auth.models import User
from auth.refresh_tokens import RefreshTokenStore

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def tokens(clock: FakeClock) -> RefreshTokenStore:
    return RefreshTokenStore(max_tokens=3, clock=clock)


@pytest.fixture
def user() -> User:
    return User(id="user-1", email="a@example.com", password_hash="x")


def _later(minutes: int = 60) -> datetime:
    return NOW + timedelta(minutes=minutes)


class TestIssue:
    def test_records_hash_not_raw_token(self, tokens: RefreshTokenStore, user: User) -> None:
        record = tokens.issue(user, "raw-token", _later())
        assert record.token_hash == hashlib.sha512(b"raw-token").hexdigest()
        assert record.created_at == NOW
        assert user.refresh_tokens == [record]
        assert all("raw-token" not in r.token_hash for r in user.refresh_tokens)

    def test_evicts_oldest_beyond_max(self, tokens: RefreshTokenStore, user: User) -> None:
        for i in range(5):
            tokens.issue(user, f"token-{i}", _later())
        assert len(user.refresh_tokens) == 3
        assert [r.token_hash for r in user.refresh_tokens] == [
            RefreshTokenStore.hash_token(f"token-{i}") for i in (2, 3, 4)
        ]
        assert not tokens.is_valid(user, "token-0")
        assert not tokens.is_valid(user, "token-1")
        assert tokens.is_valid(user, "token-4")

    def test_same_token_recorded_once(self, tokens: RefreshTokenStore, user: User) -> None:
        tokens.issue(user, "token-a", _later())
        tokens.issue(user, "token-b", _later())
        tokens.issue(user, "token-a", _later(120))
        hashes = [r.token_hash for r in user.refresh_tokens]
        assert len(hashes) == len(set(hashes)) == 2
        # re-issued record moves to the newest position
        assert hashes[-1] == RefreshTokenStore.hash_token("token-a")

    def test_max_tokens_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            RefreshTokenStore(max_tokens=0)


class TestValidity:
    def test_unknown_token_invalid(self, tokens: RefreshTokenStore, user: User) -> None:
        tokens.issue(user, "token-a", _later())
        assert tokens.is_valid(user, "token-b") is False

    def test_valid_until_expiry(self, tokens: RefreshTokenStore, user: User, clock: FakeClock) -> None:
        tokens.issue(user, "token-a", _later(10))
        assert tokens.is_valid(user, "token-a") is True
        clock.now = _later(10) - timedelta(seconds=1)
        assert tokens.is_valid(user, "token-a") is True
        clock.now = _later(10)
        assert tokens.is_valid(user, "token-a") is False

    def test_prune_expired(self, tokens: RefreshTokenStore, user: User, clock: FakeClock) -> None:
        tokens.issue(user, "short", _later(5))
        tokens.issue(user, "long", _later(60))
        clock.now = _later(5)
        assert tokens.prune_expired(user) == 1
        assert [r.token_hash for r in user.refresh_tokens] == [RefreshTokenStore.hash_token("long")]
        assert tokens.prune_expired(user) == 0


class TestRevoke:
    def test_revoke_removes_record(self, tokens: RefreshTokenStore, user: User) -> None:
        tokens.issue(user, "token-a", _later())
        tokens.issue(user, "token-b", _later())
        assert tokens.revoke(user, "token-a") is True
        assert tokens.is_valid(user, "token-a") is False
        assert tokens.is_valid(user, "token-b") is True

    def test_revoke_is_idempotent(self, tokens: RefreshTokenStore, user: User) -> None:
        tokens.issue(user, "token-a", _later())
        assert tokens.revoke(user, "token-a") is True
        assert tokens.revoke(user, "token-a") is False
        assert tokens.revoke(user, "never-issued") is False
        assert user.refresh_tokens == []
