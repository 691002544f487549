"""
auth/passwords.py -- PBKDF2 password hashing with self-describing records.

Record format:  "{iterations}:{digest}:{saltHex}:{derivedKeyHex}"

The derivation parameters travel with every hash, so raising the iteration
count or switching digest later never breaks verification of older records.
Key length is implied by the length of derivedKeyHex.

The salt is 16 random bytes rendered as 32 hex characters, and the hex text
itself is the PBKDF2 salt input. Records written by the Node backend
use the same convention and verify here unchanged.

verify() never raises: a malformed or unparseable record is simply a failed
login. Comparison is hmac.compare_digest, which does not stop at the first
differing byte.

PBKDF2 at 310k iterations costs a few hundred milliseconds of CPU. Callers on
an event loop must run hash()/verify() off the loop (api/ routes that hash
are plain ``def`` endpoints, which FastAPI runs on its worker thread pool).

Layer rule: stdlib only.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from auth.errors import ValidationError

DEFAULT_ITERATIONS = 310_000
DEFAULT_DIGEST = "sha512"
DEFAULT_KEY_LENGTH = 64
_SALT_BYTES = 16


class PasswordHasher:
    """Derive and verify salted PBKDF2 password hashes.

    Usage:
        hasher = PasswordHasher(iterations=310_000, digest="sha512", key_length=64)
        record = hasher.hash("correct horse battery staple")
        hasher.verify("correct horse battery staple", record)  # True
    """

    def __init__(
        self,
        iterations: int = DEFAULT_ITERATIONS,
        digest: str = DEFAULT_DIGEST,
        key_length: int = DEFAULT_KEY_LENGTH,
    ) -> None:
        if iterations <= 0 or key_length <= 0:
            raise ValueError("iterations and key_length must be positive")
        self.iterations = iterations
        self.digest = digest
        self.key_length = key_length

    def hash(self, password: str) -> str:
        """Return a new PBKDF2 record for password. Raises ValidationError if empty."""
        if not isinstance(password, str) or not password:
            raise ValidationError("Password is required")
        salt = secrets.token_hex(_SALT_BYTES)
        derived = _derive(password, salt, self.iterations, self.key_length, self.digest)
        return f"{self.iterations}:{self.digest}:{salt}:{derived.hex()}"

    def verify(self, password: str, stored: str) -> bool:
        """Return True if password matches the stored record, False on mismatch or bad record."""
        if not isinstance(password, str) or not isinstance(stored, str) or not stored:
            return False
        parts = stored.split(":")
        if len(parts) != 4:
            return False
        iterations_str, digest, salt, expected_hex = parts
        if not (iterations_str and digest and salt and expected_hex):
            return False
        try:
            iterations = int(iterations_str)
            expected = bytes.fromhex(expected_hex)
        except ValueError:
            return False
        if iterations <= 0 or not expected:
            return False
        try:
            derived = _derive(password, salt, iterations, len(expected_hex) // 2, digest)
        except (ValueError, TypeError):
            # Unknown digest name in the record.
            return False
        if len(derived) != len(expected):
            return False
        return hmac.compare_digest(derived, expected)


def _derive(password: str, salt: str, iterations: int, key_length: int, digest: str) -> bytes:
    return hashlib.pbkdf2_hmac(
        digest,
        password.encode("utf-8"),
        salt.encode("utf-8"),
        iterations,
        dklen=key_length,
    )
