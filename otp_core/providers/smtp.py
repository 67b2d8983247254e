"""
SMTP Email Sender
=================
Delivers OTPs by email using aiosmtplib.
"""

import email.message
import email.policy
from typing import Optional

import aiosmtplib
import structlog

from .base import ChannelSender
from ..otp.models import OTPChannel

logger = structlog.get_logger(__name__)


class SmtpEmailSender(ChannelSender):
    """Async SMTP sender for OTP emails (plain text + HTML)."""

    name = "smtp"
    channel = OTPChannel.EMAIL

    def __init__(
        self,
        host: str,
        from_email: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = False,
        start_tls: bool = True,
        timeout: float = 15.0,
        brand: str = "Your",
    ):
        super().__init__()
        if not from_email:
            raise ValueError("Sender email (from_email) is required.")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.start_tls = start_tls
        self.timeout = timeout
        self.from_email = from_email
        self.brand = brand

    def build_message(self, destination: str, code: str, ttl_seconds: int) -> email.message.EmailMessage:
        minutes = max(1, round(ttl_seconds / 60))
        message = email.message.EmailMessage(policy=email.policy.default)
        message["To"] = destination
        message["From"] = self.from_email
        message["Subject"] = f"{self.brand} verification code"
        message.set_content(
            f"Your verification code is: {code}\n\nThis code expires in {minutes} minutes.\n"
            "If you did not request this, you can ignore this email.",
            subtype="plain",
            charset="utf-8",
        )
        message.add_alternative(
            f"""
            <div style="font-family: Arial, sans-serif; line-height: 1.4">
              <p>Your verification code is:</p>
              <p style="font-size:24px;font-weight:bold;letter-spacing:2px;">{code}</p>
              <p>This code expires in {minutes} minutes.</p>
              <p>If you did not request this, you can ignore this email.</p>
            </div>
            """,
            subtype="html",
            charset="utf-8",
        )
        return message

    async def send(self, destination: str, code: str, ttl_seconds: int) -> None:
        message = self.build_message(destination, code, ttl_seconds)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.use_tls,
                start_tls=self.start_tls if not self.use_tls else False,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise self.unavailable(str(e)) from e

        logger.info("OTP email sent", provider=self.name)
