"""
Result Types
============
Structured outcomes returned by ``OTPAuthService``. A transport adapter maps
``error`` to its own wire format (see ``errors.http_status_for``).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .errors import ErrorKind, OTPAuthError, RateLimited
from .roles import Role


@dataclass
class Failure:
    """Error fields shared by every result."""
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    retryable: bool = False
    retry_after: Optional[int] = None


def failure_from(exc: OTPAuthError) -> Failure:
    return Failure(
        error=exc.kind,
        message=exc.message,
        retryable=exc.retryable,
        retry_after=exc.retry_after if isinstance(exc, RateLimited) else None,
    )


@dataclass
class OTPRequestResult:
    """
    Outcome of requesting one or two codes.

    ``challenge_ids`` holds every ledger entry written, including those whose
    send failed, so the caller can offer a resend.
    """
    ok: bool
    user_id: Optional[int] = None
    expires_in_seconds: Optional[int] = None
    challenge_ids: Dict[str, int] = field(default_factory=dict)
    failed_channels: List[str] = field(default_factory=list)
    failure: Failure = field(default_factory=Failure)
    debug_codes: Optional[Dict[str, str]] = field(default=None, repr=False)

    @property
    def error(self) -> Optional[ErrorKind]:
        return self.failure.error

    @property
    def partial(self) -> bool:
        """Some codes were sent and some were not."""
        return bool(self.failed_channels) and len(self.failed_channels) < len(self.challenge_ids)

    @classmethod
    def rejected(cls, exc: OTPAuthError) -> "OTPRequestResult":
        return cls(ok=False, failure=failure_from(exc))


@dataclass
class VerifyResult:
    """Outcome of a verification; carries the session on success."""
    ok: bool
    user_id: Optional[int] = None
    token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[datetime] = None
    role: Optional[Role] = None
    is_verified: bool = False
    failed_channels: List[str] = field(default_factory=list)
    failure: Failure = field(default_factory=Failure)

    @property
    def error(self) -> Optional[ErrorKind]:
        return self.failure.error

    @classmethod
    def rejected(cls, exc: OTPAuthError) -> "VerifyResult":
        return cls(
            ok=False,
            failed_channels=list(exc.details.get("failed_channels", [])),
            failure=failure_from(exc),
        )
