"""
Local Senders
=============
Console sender for development and an in-memory fake for tests.
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from .base import ChannelSender
from ..otp.models import OTPChannel

logger = structlog.get_logger(__name__)


class ConsoleSender(ChannelSender):
    """Logs that a code was dispatched. Development only; the code is not logged."""

    name = "console"

    def __init__(self, channel: OTPChannel = OTPChannel.SMS):
        super().__init__()
        self.channel = channel

    async def send(self, destination: str, code: str, ttl_seconds: int) -> None:
        logger.info(
            "OTP dispatched to console",
            channel=self.channel.value,
            code_length=len(code),
            ttl_seconds=ttl_seconds,
        )


@dataclass
class SentCode:
    """Record of a dispatched code for test assertions."""
    destination: str
    code: str
    ttl_seconds: int


class InMemorySender(ChannelSender):
    """
    Test double (Fake) that stores dispatched codes.

    Set ``fail_with`` to make every send raise ``ChannelUnavailable``.
    """

    name = "memory"

    def __init__(self, channel: OTPChannel = OTPChannel.SMS, fail_with: Optional[str] = None):
        super().__init__()
        self.channel = channel
        self.fail_with = fail_with
        self.sent: List[SentCode] = []

    async def send(self, destination: str, code: str, ttl_seconds: int) -> None:
        if self.fail_with:
            raise self.unavailable(self.fail_with)
        self.sent.append(SentCode(destination, code, ttl_seconds))

    @property
    def last_code(self) -> str:
        if not self.sent:
            raise AssertionError(f"No code sent on {self.channel.value}")
        return self.sent[-1].code
