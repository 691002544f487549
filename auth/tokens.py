"""
auth/tokens.py -- Compact HS256 signed tokens (access and refresh).

Wire format (three base64url segments, no padding, joined by "."):

    b64url(JSON(header)) . b64url(JSON(payload)) . b64url(HMAC-SHA256(h "." p, secret))

  header   always {"alg":"HS256","typ":"JWT"} -- the only header accepted
  payload  {"sub": <user id>, "type": "access"|"refresh", "iat": <s>, "exp": <s>, "jti": <nonce>}

Security design decisions:
  Fixed header: verify() compares the header segment byte-for-byte with the
       one we emit. There is no algorithm negotiation, so "alg":"none" and
       key-confusion tricks have nothing to attach to.

  Strict base64url: segments must be unpadded, use only the URL-safe
       alphabet, and re-encode to exactly the same text. A token therefore has
       one spelling; a refresh token hashed into the store cannot be replayed
       under an alternative encoding of the same bytes.

  Signature check: lengths are compared first, then hmac.compare_digest
       (constant time) on equal-length inputs.

  jti nonce: two tokens minted for the same user in the same second would
       otherwise be identical strings. For refresh tokens that would let a
       rotated-away token reappear in the store as its own replacement.

  Expiry: exp <= now is expired. No clock-skew window.

The codec holds no secrets. Callers pass the access or refresh secret on each
call, which keeps the two key spaces visibly separate at every call site.

Layer rule: stdlib only (plus auth.errors / auth.models).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
import secrets
import time
from typing import Callable

from auth.errors import (
    BadSignatureError,
    MalformedTokenError,
    TokenExpiredError,
    UnsupportedHeaderError,
    WrongTokenTypeError,
)
from auth.models import SignedToken, TokenClaims, TokenType

_B64URL_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")


# ---------------------------------------------------------------------------
# base64url helpers
# ---------------------------------------------------------------------------


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Decode an unpadded, canonical base64url segment. Raises ValueError otherwise."""
    if not _B64URL_SEGMENT.match(segment) or len(segment) % 4 == 1:
        raise ValueError("not base64url")
    padded = segment + "=" * (-len(segment) % 4)
    try:
        data = base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise ValueError("not base64url") from exc
    if b64url_encode(data) != segment:
        raise ValueError("non-canonical base64url")
    return data


def _compact_json(value: dict) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


SUPPORTED_HEADER = {"alg": "HS256", "typ": "JWT"}
_ENCODED_HEADER = b64url_encode(_compact_json(SUPPORTED_HEADER))


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Sign and verify compact tokens. Pure and synchronous; safe to call inline.

    clock returns the current UNIX time in seconds. Tests inject a fixed clock
    to land exactly on expiry boundaries.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def sign(self, subject: str, token_type: TokenType, secret: str, ttl_seconds: int) -> SignedToken:
        """Mint a token for subject that expires ttl_seconds from now."""
        issued_at = int(self._clock())
        expires_at = issued_at + ttl_seconds
        payload = {
            "sub": subject,
            "type": TokenType(token_type).value,
            "iat": issued_at,
            "exp": expires_at,
            "jti": secrets.token_urlsafe(16),
        }
        signing_input = f"{_ENCODED_HEADER}.{b64url_encode(_compact_json(payload))}"
        signature = _hmac_sha256(secret, signing_input)
        return SignedToken(token=f"{signing_input}.{b64url_encode(signature)}", expires_at=expires_at)

    def verify(self, token: str, secret: str, expected_type: TokenType) -> TokenClaims:
        """Return the token's claims or raise the TokenError subclass for the first failed check.

        Check order: shape/encoding, header, signature, type, expiry.
        """
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("token is empty")
        segments = token.split(".")
        if len(segments) != 3 or not all(segments):
            raise MalformedTokenError("expected three segments")
        encoded_header, encoded_payload, encoded_signature = segments
        try:
            header_bytes = b64url_decode(encoded_header)
            payload_bytes = b64url_decode(encoded_payload)
            provided_signature = b64url_decode(encoded_signature)
        except ValueError as exc:
            raise MalformedTokenError(str(exc)) from exc

        if encoded_header != _ENCODED_HEADER or header_bytes != _compact_json(SUPPORTED_HEADER):
            raise UnsupportedHeaderError()

        expected_signature = _hmac_sha256(secret, f"{encoded_header}.{encoded_payload}")
        if len(provided_signature) != len(expected_signature):
            raise BadSignatureError("signature length mismatch")
        if not hmac.compare_digest(provided_signature, expected_signature):
            raise BadSignatureError()

        try:
            payload = json.loads(payload_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedTokenError("payload is not JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedTokenError("payload is not an object")
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MalformedTokenError("missing subject")

        try:
            token_type = TokenType(payload.get("type"))
        except ValueError as exc:
            raise WrongTokenTypeError(f"unknown type {payload.get('type')!r}") from exc
        if token_type is not TokenType(expected_type):
            raise WrongTokenTypeError(f"expected {TokenType(expected_type).value}, got {token_type.value}")

        expires_at = payload.get("exp")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise TokenExpiredError("missing exp")
        if expires_at <= self._clock():
            raise TokenExpiredError()

        issued_at = payload.get("iat")
        token_id = payload.get("jti")
        return TokenClaims(
            subject=subject,
            type=token_type,
            issued_at=int(issued_at) if isinstance(issued_at, (int, float)) else 0,
            expires_at=int(expires_at),
            token_id=token_id if isinstance(token_id, str) else None,
        )


def _hmac_sha256(secret: str, signing_input: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
