"""
OTP Auth Errors
===============
Tagged error kinds for every expected outcome of the OTP flows.

Errors are raised inside the engine and converted into result objects by
``OTPAuthService`` so a transport adapter never sees a raw exception.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Error taxonomy exposed to callers."""
    INVALID_PHONE = "invalid_phone"
    INVALID_EMAIL = "invalid_email"
    DUPLICATE_IDENTITY = "duplicate_identity"
    NOT_REQUESTED = "not_requested"
    ALREADY_CONSUMED = "already_consumed"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    CHANNEL_UNAVAILABLE = "channel_unavailable"
    RATE_LIMITED = "rate_limited"
    STORAGE_UNAVAILABLE = "storage_unavailable"


# Suggested transport status codes
HTTP_STATUS = {
    ErrorKind.INVALID_PHONE: 400,
    ErrorKind.INVALID_EMAIL: 400,
    ErrorKind.DUPLICATE_IDENTITY: 409,
    ErrorKind.NOT_REQUESTED: 400,
    ErrorKind.ALREADY_CONSUMED: 400,
    ErrorKind.EXPIRED: 400,
    ErrorKind.INVALID_CODE: 400,
    ErrorKind.TOO_MANY_ATTEMPTS: 429,
    ErrorKind.CHANNEL_UNAVAILABLE: 502,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
}


def http_status_for(kind: ErrorKind) -> int:
    """Map an error kind to the status code a web transport should use."""
    return HTTP_STATUS.get(kind, 500)


class OTPAuthError(Exception):
    """Base exception for OTP auth outcomes."""

    kind: ErrorKind = ErrorKind.STORAGE_UNAVAILABLE
    default_message: str = "Request failed"
    retryable: bool = False

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidPhone(OTPAuthError):
    kind = ErrorKind.INVALID_PHONE
    default_message = "Invalid phone number"


class InvalidEmail(OTPAuthError):
    kind = ErrorKind.INVALID_EMAIL
    default_message = "Invalid email address"


class DuplicateIdentity(OTPAuthError):
    """Raised when a concurrent insert already claimed the phone number."""
    kind = ErrorKind.DUPLICATE_IDENTITY
    default_message = "Identity already exists"
    retryable = True


class NotRequested(OTPAuthError):
    kind = ErrorKind.NOT_REQUESTED
    default_message = "No OTP was requested"


class AlreadyConsumed(OTPAuthError):
    kind = ErrorKind.ALREADY_CONSUMED
    default_message = "OTP already used"


class Expired(OTPAuthError):
    kind = ErrorKind.EXPIRED
    default_message = "OTP expired"


class InvalidCode(OTPAuthError):
    kind = ErrorKind.INVALID_CODE
    default_message = "Invalid OTP"


class TooManyAttempts(OTPAuthError):
    kind = ErrorKind.TOO_MANY_ATTEMPTS
    default_message = "Too many attempts. Request a new code"


class ChannelUnavailable(OTPAuthError):
    """Raised by channel senders when dispatch fails."""
    kind = ErrorKind.CHANNEL_UNAVAILABLE
    default_message = "Failed to send OTP. Try again in a moment"
    retryable = True

    def __init__(self, message: Optional[str] = None, channel: Optional[str] = None, **details):
        super().__init__(message, **details)
        self.channel = channel


class RateLimited(OTPAuthError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many requests"
    retryable = True

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None, **details):
        super().__init__(message, **details)
        self.retry_after = retry_after


class StorageUnavailable(OTPAuthError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    default_message = "Service temporarily unavailable"
    retryable = True
