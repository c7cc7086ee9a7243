from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt


JWT_SECRET = os.getenv("JWT_SECRET", "change_me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "1440"))  # 1 day default


class InvalidToken(Exception):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_token(*, user_id: str) -> str:
    """Mint a bearer token for the account with public identifier ``user_id``."""
    now = _now()
    payload = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=JWT_EXP_MIN)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> str:
    """Return the account identifier carried by ``token``."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError as e:
        raise InvalidToken(str(e)) from e
    sub = payload.get("sub")
    if not sub:
        raise InvalidToken("Token has no subject")
    return str(sub)
