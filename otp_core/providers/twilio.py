"""
Twilio SMS Sender
=================
Delivers OTPs as plain SMS through the Twilio Messages API.
"""

from base64 import b64encode
from typing import Optional

import httpx
import structlog

from .base import ChannelSender, otp_message
from ..otp.models import OTPChannel

logger = structlog.get_logger(__name__)


class TwilioSmsSender(ChannelSender):
    """
    Twilio SMS sender.

    Either ``from_number`` or ``messaging_service_sid`` must be set.
    """

    name = "twilio"
    channel = OTPChannel.SMS

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        brand: str = "Your",
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        if not (from_number or messaging_service_sid):
            raise ValueError("from_number or messaging_service_sid is required")
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.brand = brand
        self.base_url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}"
        self._client = client

    async def initialize(self) -> None:
        """Create HTTP client with auth."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        await super().initialize()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        await super().close()

    def _auth_header(self) -> str:
        return "Basic " + b64encode(f"{self.account_sid}:{self.auth_token}".encode()).decode()

    async def send(self, destination: str, code: str, ttl_seconds: int) -> None:
        if self._client is None:
            await self.initialize()

        payload = {
            "To": destination,
            "Body": otp_message(code, ttl_seconds, self.brand),
        }
        if self.messaging_service_sid:
            payload["MessagingServiceSid"] = self.messaging_service_sid
        else:
            payload["From"] = self.from_number

        try:
            response = await self._client.post(
                f"{self.base_url}/Messages.json",
                data=payload,
                headers={"Authorization": self._auth_header()},
            )
        except httpx.HTTPError as e:
            raise self.unavailable(f"request error: {e}") from e

        if response.status_code != 201:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            raise self.unavailable(
                f"code={error_data.get('code', response.status_code)} "
                f"message={error_data.get('message', 'Unknown error')}"
            )

        logger.info("OTP SMS sent", provider=self.name, sid=response.json().get("sid"))
