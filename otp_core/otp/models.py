"""
OTP Models
==========
Value types for issued challenges and their lifecycle.
"""

from datetime import datetime
from dataclasses import dataclass
from enum import Enum


class OTPChannel(str, Enum):
    """OTP delivery channels."""
    SMS = "sms"
    EMAIL = "email"


class ChallengeState(str, Enum):
    """Lifecycle of a single challenge."""
    ISSUED = "issued"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class IssuedChallenge:
    """
    A freshly written ledger entry.

    ``code`` is the plain OTP and must only ever be handed to a channel
    sender (or the debug path); it is never persisted.
    """
    id: int
    user_id: int
    channel: OTPChannel
    destination: str
    code: str
    expires_at: datetime

    def __repr__(self) -> str:
        return (
            f"IssuedChallenge(id={self.id}, user_id={self.user_id}, "
            f"channel={self.channel.value}, expires_at={self.expires_at.isoformat()})"
        )
