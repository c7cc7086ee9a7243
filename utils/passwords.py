from __future__ import annotations

import os

import bcrypt


BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))


def _safe_bytes(password: str) -> bytes:
    # Multi-byte safe truncation for bcrypt (max 72 bytes)
    return password.encode("utf-8")[:72].decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_safe_bytes(password), salt).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_safe_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False
