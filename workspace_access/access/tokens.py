"""Opaque bearer tokens: generated once, stored only as a keyed hash."""

from __future__ import annotations

import hashlib
import hmac
import secrets

TOKEN_BYTES = 32
TOKEN_HASH_LENGTH = 64


def generate_token() -> str:
    """256 bits of entropy, URL-safe base64."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(raw_token: str, secret: str) -> str:
    """HMAC-SHA256 hex digest; fixed 64-character output."""
    return hmac.new(secret.encode("utf-8"), raw_token.encode("utf-8"), hashlib.sha256).hexdigest()
