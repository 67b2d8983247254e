"""
OTP Core Library
================
Self-hosted one-time-passcode authentication over SMS and email.
"""

__version__ = "0.1.0"

# Configuration
from otp_core.config import OTPAuthConfig

# Database
from otp_core.database import (
    create_async_engine,
    create_session_factory,
    get_session,
    init_models,
    close_engine,
)

# Errors
from otp_core.errors import (
    ErrorKind,
    OTPAuthError,
    InvalidPhone,
    InvalidEmail,
    DuplicateIdentity,
    NotRequested,
    AlreadyConsumed,
    Expired,
    InvalidCode,
    TooManyAttempts,
    ChannelUnavailable,
    RateLimited,
    StorageUnavailable,
    http_status_for,
)

# OTP
from otp_core.otp import (
    OTPChannel,
    OTPLedger,
    DualChannelVerifier,
    generate_otp,
    hash_otp,
    verify_otp_hash,
)

# Rate Limiting
from otp_core.rate_limit import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    RateLimitInfo,
)

# Senders
from otp_core.providers import (
    ChannelSender,
    Msg91SmsSender,
    TwilioSmsSender,
    SmtpEmailSender,
    ConsoleSender,
    InMemorySender,
)

# Identity, roles, sessions
from otp_core.identity import IdentityResolver
from otp_core.roles import Role, RoleCache, RoleResolver
from otp_core.sessions import SessionIssuer, IssuedSession

# Service
from otp_core.results import OTPRequestResult, VerifyResult
from otp_core.service import OTPAuthService

# Logging
from otp_core.log_config import setup_logging

__all__ = [
    "__version__",
    "OTPAuthConfig",
    "create_async_engine",
    "create_session_factory",
    "get_session",
    "init_models",
    "close_engine",
    "ErrorKind",
    "OTPAuthError",
    "InvalidPhone",
    "InvalidEmail",
    "DuplicateIdentity",
    "NotRequested",
    "AlreadyConsumed",
    "Expired",
    "InvalidCode",
    "TooManyAttempts",
    "ChannelUnavailable",
    "RateLimited",
    "StorageUnavailable",
    "http_status_for",
    "OTPChannel",
    "OTPLedger",
    "DualChannelVerifier",
    "generate_otp",
    "hash_otp",
    "verify_otp_hash",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "RateLimitInfo",
    "ChannelSender",
    "Msg91SmsSender",
    "TwilioSmsSender",
    "SmtpEmailSender",
    "ConsoleSender",
    "InMemorySender",
    "IdentityResolver",
    "Role",
    "RoleCache",
    "RoleResolver",
    "SessionIssuer",
    "IssuedSession",
    "OTPRequestResult",
    "VerifyResult",
    "OTPAuthService",
    "setup_logging",
]
