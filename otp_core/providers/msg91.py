"""
MSG91 SMS Sender
================
Delivers OTPs through the MSG91 OTP API.
"""

from typing import Optional

import httpx
import structlog

from .base import ChannelSender
from ..otp.models import OTPChannel

logger = structlog.get_logger(__name__)

MSG91_OTP_URL = "https://api.msg91.com/api/v5/otp"


class Msg91SmsSender(ChannelSender):
    """
    MSG91 OTP sender.

    MSG91 sometimes answers HTTP 200 with an error payload; that is treated
    as a failure too.
    """

    name = "msg91"
    channel = OTPChannel.SMS

    def __init__(
        self,
        auth_key: str,
        template_id: Optional[str] = None,
        sender_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        super().__init__()
        if not auth_key:
            raise ValueError("MSG91 auth_key is required")
        self.auth_key = auth_key
        self.template_id = template_id
        self.sender_id = sender_id
        self.timeout = timeout
        self._client = client

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        await super().initialize()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        await super().close()

    async def send(self, destination: str, code: str, ttl_seconds: int) -> None:
        if self._client is None:
            await self.initialize()

        payload = {
            "mobile": destination.lstrip("+"),
            "otp": code,
        }
        if self.template_id:
            payload["template_id"] = self.template_id
        if self.sender_id:
            payload["sender"] = self.sender_id

        try:
            response = await self._client.post(
                MSG91_OTP_URL,
                json=payload,
                headers={"authkey": self.auth_key},
            )
        except httpx.HTTPError as e:
            raise self.unavailable(f"request error: {e}") from e

        if response.status_code >= 400:
            raise self.unavailable(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            # Non-JSON 2xx bodies are accepted
            return

        if not isinstance(data, dict):
            return
        kind = str(data.get("type", "")).lower()
        if kind and kind != "success":
            raise self.unavailable(f"type={data.get('type')} message={data.get('message', '')}")
        if data.get("error"):
            raise self.unavailable(f"error={data['error']}")

        logger.info("OTP SMS sent", provider=self.name, request_id=data.get("request_id"))
