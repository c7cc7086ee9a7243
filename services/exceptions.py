"""Failures raised by the account flow and its collaborators."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AuthServiceError(Exception):
    """Base class for failures reported to the caller as ``{kind, message}``."""

    kind = "internal"
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(AuthServiceError):
    """Missing or malformed input."""

    kind = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class DuplicateAccountError(AuthServiceError):
    """The email already belongs to a verified account."""

    kind = "duplicate_account"
    status_code = 400
    default_message = "Email already exists"


class AccountNotFound(AuthServiceError):
    kind = "account_not_found"
    status_code = 404
    default_message = "User not found"


class InvalidCredentials(AuthServiceError):
    """Unknown email or wrong password. The two are never told apart."""

    kind = "invalid_credentials"
    status_code = 400
    default_message = "Invalid credentials"


class VerificationRequired(AuthServiceError):
    """The account exists but its email has not been verified yet.

    A fresh OTP has already been sent when this is raised; clients should
    redirect to the verification step for ``email``.
    """

    kind = "verification_required"
    status_code = 403
    default_message = "Email not verified. A new verification OTP has been sent."

    def __init__(self, email: str, message: Optional[str] = None):
        super().__init__(message)
        self.email = email

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({"requiresVerification": True, "email": self.email})
        return body


class InvalidOrExpiredOTP(AuthServiceError):
    kind = "invalid_or_expired_otp"
    status_code = 400
    default_message = "Invalid or expired OTP"


class DeliveryError(AuthServiceError):
    """The notification sink could not deliver a message."""

    kind = "delivery_error"
    status_code = 500
    default_message = "Error sending OTP"


class RepositoryError(AuthServiceError):
    """Persistence (database or OTP backing store) failed."""

    kind = "repository_error"
    status_code = 500
    default_message = "Server error"


class InvalidSession(AuthServiceError):
    """Missing, malformed or expired bearer token, or its account is gone."""

    kind = "invalid_session"
    status_code = 401
    default_message = "Invalid token"
