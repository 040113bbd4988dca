from __future__ import annotations

import bcrypt

BCRYPT_MAX_BYTES = 72


def _normalize(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes and newer releases reject longer input.
    return (password or "").encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_normalize(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_normalize(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False
