"""
Channel Sender Base
===================
Uniform ``send(destination, code, ttl_seconds)`` contract for OTP delivery.
"""

from abc import ABC, abstractmethod
import structlog

from ..errors import ChannelUnavailable
from ..otp.models import OTPChannel

logger = structlog.get_logger(__name__)


class ChannelSender(ABC):
    """
    Abstract base class for OTP channel senders.

    Implementations raise ``ChannelUnavailable`` on any delivery failure and
    never retry internally.
    """

    name: str = "base"
    channel: OTPChannel = OTPChannel.SMS

    def __init__(self):
        self._is_initialized = False

    async def initialize(self) -> None:
        """Initialize the sender (e.g., create HTTP clients)."""
        self._is_initialized = True
        logger.info("Channel sender initialized", provider=self.name)

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        self._is_initialized = False
        logger.info("Channel sender closed", provider=self.name)

    @abstractmethod
    async def send(self, destination: str, code: str, ttl_seconds: int) -> None:
        """
        Deliver ``code`` to ``destination``.

        Args:
            destination: E.164 phone or email address
            code: Plain OTP
            ttl_seconds: Code lifetime, for the message text

        Raises:
            ChannelUnavailable: Delivery failed
        """
        pass

    def unavailable(self, message: str) -> ChannelUnavailable:
        logger.warning("OTP dispatch failed", provider=self.name, channel=self.channel.value, error=message)
        return ChannelUnavailable(channel=self.channel.value, provider=self.name, reason=message)


def otp_message(code: str, ttl_seconds: int, brand: str = "Your") -> str:
    minutes = max(1, round(ttl_seconds / 60))
    return f"{brand} verification code is {code}. It expires in {minutes} minutes."
