"""
Registration, email verification and login.

An account starts unverified and becomes verified once, when the code sent
at registration is confirmed through ``verify_email``. Password login is
refused for unverified accounts; instead a fresh code is sent and the caller
is told to verify. ``request_otp``/``verify_otp_login`` offer a password-less
login for any existing account.

Each step finishes before the next one starts; nothing is rolled back if
delivery fails after the account or code were stored, so the caller can
always recover through ``request_otp``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from models import User
from services.exceptions import (
    AccountNotFound,
    DuplicateAccountError,
    InvalidCredentials,
    InvalidOrExpiredOTP,
    ValidationError,
    VerificationRequired,
)
from services.users import UserRepository
from utils.otp_service import OTPStore
from utils.passwords import check_password, hash_password
from utils.tokens import create_token


logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _require(message: str, *values: Optional[str]) -> None:
    if not all(_clean(v) for v in values):
        raise ValidationError(message)


def _parse_dob(value: Optional[str]) -> Optional[date]:
    value = _clean(value)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError("Date of birth must be an ISO date (YYYY-MM-DD)")


def public_profile(user: User) -> Dict[str, Any]:
    return {
        "userId": user.user_id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "mobile": user.mobile,
        "dob": user.dob.isoformat() if user.dob else None,
        "gender": user.gender,
    }


class AccountService:
    def __init__(self, users: UserRepository, otp_store: OTPStore, notify: Notifier):
        self.users = users
        self.otp_store = otp_store
        self.notify = notify

    def _send_code(self, email: str) -> None:
        code = self.otp_store.issue(email)
        self.notify(email, code)

    def _session(self, user: User) -> Tuple[str, User]:
        return create_token(user_id=user.user_id), user

    def register(
        self,
        *,
        first_name: Optional[str],
        last_name: Optional[str],
        email: Optional[str],
        mobile: Optional[str],
        password: Optional[str],
        dob: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> str:
        """Create an unverified account and send its verification code.

        Returns the email the code was sent to.
        """
        _require(
            "First name, last name, email, mobile, and password are required",
            first_name, last_name, email, mobile, password,
        )
        email = _clean(email)
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email: {e}") from e
        birth_date = _parse_dob(dob)

        existing = self.users.find_by_email(email)
        if existing is not None:
            if existing.is_verified:
                raise DuplicateAccountError()
            # Abandoned registration: start over under the same email.
            logger.info("Replacing unverified account %s for %s", existing.user_id, email)
            self.users.delete(existing)

        user = self.users.insert(
            User(
                first_name=_clean(first_name),
                last_name=_clean(last_name),
                email=email,
                mobile=_clean(mobile),
                password_hash=hash_password(password),
                dob=birth_date,
                gender=_clean(gender) or None,
                is_verified=False,
            )
        )
        self._send_code(user.email)
        return user.email

    def verify_email(self, *, email: Optional[str], code: Optional[str]) -> Tuple[str, User]:
        _require("Email and OTP are required", email, code)
        email = _clean(email)
        if not self.otp_store.verify(email, code):
            raise InvalidOrExpiredOTP()

        user = self.users.find_by_email(email)
        if user is None:
            raise AccountNotFound()
        if not user.is_verified:
            user.is_verified = True
            self.users.update(user)
            logger.info("Account %s verified", user.user_id)
        return self._session(user)

    def login(self, *, email: Optional[str], password: Optional[str]) -> Tuple[str, User]:
        _require("Email and password are required", email, password)
        email = _clean(email)

        user = self.users.find_by_email(email)
        if user is None:
            raise InvalidCredentials()
        if not user.is_verified:
            self._send_code(user.email)
            raise VerificationRequired(user.email)
        if not check_password(password, user.password_hash):
            raise InvalidCredentials()
        return self._session(user)

    def request_otp(self, *, email: Optional[str]) -> str:
        _require("Email is required", email)
        email = _clean(email)

        user = self.users.find_by_email(email)
        if user is None:
            raise AccountNotFound("User not found with this email")
        self._send_code(user.email)
        return user.email

    def verify_otp_login(self, *, email: Optional[str], code: Optional[str]) -> Tuple[str, User]:
        _require("Email and OTP are required", email, code)
        email = _clean(email)
        if not self.otp_store.verify(email, code):
            raise InvalidOrExpiredOTP()

        # The account may have been replaced or removed since the code went out.
        user = self.users.find_by_email(email)
        if user is None:
            raise AccountNotFound()
        return self._session(user)
