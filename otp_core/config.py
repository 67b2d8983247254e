"""
OTP Auth Configuration
======================
Configuration for the OTP engine, loaded from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

PRODUCTION = "production"
SESSION_LIFETIME_SECONDS = 7 * 24 * 60 * 60  # fixed, not configurable


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class OTPAuthConfig:
    """Runtime configuration for the OTP engine."""
    jwt_secret: str
    environment: str = "development"
    otp_length: int = 6
    otp_ttl_seconds: int = 300
    max_attempts: int = 5
    admin_emails: Tuple[str, ...] = field(default_factory=tuple)
    debug_return_code: bool = False
    rate_limit_max: int = 10
    rate_limit_window_seconds: int = 600
    role_cache_ttl_seconds: int = 60
    phone_default_country: str = "91"
    jwt_algorithm: str = "HS256"
    database_url: str = "sqlite+aiosqlite:///./otp.db"
    redis_url: Optional[str] = None

    def __post_init__(self):
        if self.otp_length != 6:
            raise ValueError("otp_length must be 6")
        if len(self.jwt_secret or "") < 32:
            raise ValueError("jwt_secret must be at least 32 characters")
        if self.otp_ttl_seconds <= 0:
            raise ValueError("otp_ttl_seconds must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.is_production and self.debug_return_code:
            raise ValueError("debug_return_code cannot be enabled in production")
        object.__setattr__(
            self, "admin_emails", tuple(e.strip().lower() for e in self.admin_emails if e.strip())
        )

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == PRODUCTION

    @property
    def expose_debug_code(self) -> bool:
        """True only outside production when the debug flag is set."""
        return self.debug_return_code and not self.is_production

    @property
    def session_lifetime_seconds(self) -> int:
        return SESSION_LIFETIME_SECONDS

    def is_admin_email(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.admin_emails

    @classmethod
    def from_env(cls) -> "OTPAuthConfig":
        """Build configuration from environment variables."""
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", ""),
            environment=os.getenv("APP_ENV", "development"),
            otp_ttl_seconds=int(os.getenv("OTP_EXPIRES_SECONDS", "300")),
            max_attempts=int(os.getenv("OTP_MAX_ATTEMPTS", "5")),
            admin_emails=_env_list("ADMIN_EMAIL"),
            debug_return_code=_env_bool("OTP_DEBUG_RETURN_CODE"),
            rate_limit_max=int(os.getenv("OTP_RATE_LIMIT_MAX", "10")),
            rate_limit_window_seconds=int(os.getenv("OTP_RATE_LIMIT_WINDOW_SECONDS", "600")),
            role_cache_ttl_seconds=int(os.getenv("ROLE_CACHE_TTL_SECONDS", "60")),
            phone_default_country=os.getenv("PHONE_DEFAULT_COUNTRY", "91"),
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./otp.db"),
            redis_url=os.getenv("REDIS_URL") or None,
        )
