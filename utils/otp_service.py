"""
One-time codes keyed by account identifier (the email address).

Two backings share the same contract:

- ``MemoryOTPStore`` keeps records in a process-local table and checks expiry
  explicitly against an injectable clock.
- ``RedisOTPStore`` relies on Redis' native key TTL and is selected when
  ``REDIS_URL`` is set.

At most one live code exists per identifier: issuing again overwrites the
previous record, and a successful verification consumes it.
"""

from __future__ import annotations

import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Optional

import redis

from services.exceptions import RepositoryError
from utils.brevo_email import send_email


logger = logging.getLogger(__name__)

OTP_EXP_MIN = int(os.getenv("OTP_EXP_MINUTES", "5"))
OTP_SUBJECT = os.getenv("OTP_SUBJECT", "Your verification code")
OTP_TTL_SECONDS = OTP_EXP_MIN * 60


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def codes_equal(a: str, b: str) -> bool:
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


@dataclass
class OTPRecord:
    code: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


class OTPStore:
    """Issue and consume one-time codes."""

    def issue(self, identifier: str) -> str:
        raise NotImplementedError

    def verify(self, identifier: str, code: Optional[str]) -> bool:
        raise NotImplementedError

    def sweep(self) -> int:
        """Drop expired records; returns how many were removed."""
        return 0


class MemoryOTPStore(OTPStore):
    def __init__(self, ttl_seconds: int = OTP_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: Dict[str, OTPRecord] = {}
        # One lock for the table keeps issue/verify linearizable per identifier.
        self._lock = threading.Lock()

    def issue(self, identifier: str) -> str:
        code = generate_code()
        with self._lock:
            superseded = identifier in self._records
            self._records[identifier] = OTPRecord(code, self._clock() + self.ttl_seconds)
        logger.info("Issued OTP for %s (superseded=%s)", identifier, superseded)
        return code

    def verify(self, identifier: str, code: Optional[str]) -> bool:
        code = (code or "").strip()
        if not code:
            return False
        with self._lock:
            record = self._records.get(identifier)
            if record is None:
                return False
            if record.expired(self._clock()):
                del self._records[identifier]
                logger.info("OTP for %s expired", identifier)
                return False
            if not codes_equal(record.code, code):
                return False
            del self._records[identifier]
        logger.info("OTP for %s consumed", identifier)
        return True

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, rec in self._records.items() if rec.expired(now)]
            for k in expired:
                del self._records[k]
        if expired:
            logger.debug("Swept %d expired OTP records", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class RedisOTPStore(OTPStore):
    def __init__(self, client: "redis.Redis", ttl_seconds: int = OTP_TTL_SECONDS, prefix: str = "otp:"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, identifier: str) -> str:
        return f"{self.prefix}{identifier}"

    def issue(self, identifier: str) -> str:
        code = generate_code()
        try:
            # SETEX replaces any outstanding code and resets its TTL.
            self.client.setex(self._key(identifier), self.ttl_seconds, code)
        except redis.RedisError as e:
            logger.exception("Could not store OTP for %s", identifier)
            raise RepositoryError("Could not store OTP") from e
        logger.info("Issued OTP for %s", identifier)
        return code

    def verify(self, identifier: str, code: Optional[str]) -> bool:
        code = (code or "").strip()
        if not code:
            return False
        key = self._key(identifier)

        def _consume(pipe) -> bool:
            stored = pipe.get(key)
            if stored is None or not codes_equal(stored, code):
                return False
            pipe.multi()
            pipe.delete(key)
            return True

        try:
            ok = self.client.transaction(_consume, key, value_from_callable=True)
        except redis.RedisError as e:
            logger.exception("Could not verify OTP for %s", identifier)
            raise RepositoryError("Could not verify OTP") from e
        if ok:
            logger.info("OTP for %s consumed", identifier)
        return ok


@lru_cache(maxsize=1)
def get_otp_store() -> OTPStore:
    """Process-wide store. Redis when REDIS_URL is set; otherwise in-memory."""
    url = os.getenv("REDIS_URL")
    if url:
        return RedisOTPStore(redis.Redis.from_url(url, decode_responses=True))
    return MemoryOTPStore()


def send_otp_email(email: str, code: str) -> None:
    """Deliver ``code`` to ``email`` through the configured mail backend."""
    backend = os.getenv("MAIL_BACKEND", "brevo").strip().lower()
    if backend == "log":
        # Development only: the code ends up in the application log.
        logger.warning("OTP for %s is %s", email, code)
        return

    html = f"""
    <div style="font-family:Arial,sans-serif">
      <h2>Verification code</h2>
      <p>Your OTP is:</p>
      <div style="font-size:28px;font-weight:700;letter-spacing:2px">{code}</div>
      <p>This OTP expires in {OTP_EXP_MIN} minutes.</p>
    </div>
    """
    send_email(
        to_email=email,
        subject=OTP_SUBJECT,
        html=html,
        text=f"Your OTP is {code}. It expires in {OTP_EXP_MIN} minutes.",
    )


def get_notifier() -> Callable[[str, str], None]:
    return send_otp_email
