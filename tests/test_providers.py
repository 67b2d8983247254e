"""
Tests for channel senders
=========================
HTTP providers run against httpx.MockTransport; SMTP against a patched
``aiosmtplib.send``.
"""

import json
from unittest.mock import AsyncMock

import aiosmtplib
import httpx
import pytest

from otp_core.errors import ChannelUnavailable, ErrorKind
from otp_core.otp import OTPChannel
from otp_core.providers import (
    ConsoleSender,
    InMemorySender,
    Msg91SmsSender,
    SmtpEmailSender,
    TwilioSmsSender,
)
from otp_core.providers.base import otp_message
from otp_core.providers.msg91 import MSG91_OTP_URL


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestMsg91SmsSender:
    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["authkey"] = request.headers["authkey"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"type": "success", "request_id": "r-1"})

        sender = Msg91SmsSender(auth_key="key", template_id="tpl", sender_id="OTPSND", client=_client(handler))
        await sender.send("+919999999999", "123456", 300)

        assert seen["url"] == MSG91_OTP_URL
        assert seen["authkey"] == "key"
        assert seen["body"] == {
            "mobile": "919999999999",
            "otp": "123456",
            "template_id": "tpl",
            "sender": "OTPSND",
        }

    @pytest.mark.asyncio
    async def test_error_payload_with_200_is_failure(self):
        sender = Msg91SmsSender(
            auth_key="key",
            client=_client(lambda r: httpx.Response(200, json={"type": "error", "message": "bad template"})),
        )

        with pytest.raises(ChannelUnavailable) as exc_info:
            await sender.send("+919999999999", "123456", 300)

        assert exc_info.value.kind is ErrorKind.CHANNEL_UNAVAILABLE
        assert exc_info.value.channel == "sms"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        sender = Msg91SmsSender(auth_key="key", client=_client(lambda r: httpx.Response(503)))

        with pytest.raises(ChannelUnavailable):
            await sender.send("+919999999999", "123456", 300)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        sender = Msg91SmsSender(auth_key="key", client=_client(handler))

        with pytest.raises(ChannelUnavailable):
            await sender.send("+919999999999", "123456", 300)

    @pytest.mark.asyncio
    async def test_non_json_success_is_accepted(self):
        sender = Msg91SmsSender(auth_key="key", client=_client(lambda r: httpx.Response(200, text="OK")))

        await sender.send("+919999999999", "123456", 300)

    def test_auth_key_required(self):
        with pytest.raises(ValueError):
            Msg91SmsSender(auth_key="")


class TestTwilioSmsSender:
    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = request.content.decode()
            return httpx.Response(201, json={"sid": "SM123"})

        sender = TwilioSmsSender("AC1", "token", from_number="+15005550006", client=_client(handler))
        await sender.send("+14155551234", "654321", 300)

        assert seen["url"].endswith("/Accounts/AC1/Messages.json")
        assert seen["auth"].startswith("Basic ")
        assert "654321" in seen["body"]
        assert "From=%2B15005550006" in seen["body"]

    @pytest.mark.asyncio
    async def test_non_201_is_failure(self):
        sender = TwilioSmsSender(
            "AC1",
            "token",
            messaging_service_sid="MG1",
            client=_client(lambda r: httpx.Response(400, json={"code": 21211, "message": "Invalid 'To'"})),
        )

        with pytest.raises(ChannelUnavailable):
            await sender.send("+14155551234", "654321", 300)

    def test_sender_identity_required(self):
        with pytest.raises(ValueError):
            TwilioSmsSender("AC1", "token")


class TestSmtpEmailSender:
    @pytest.mark.asyncio
    async def test_sends_message(self, monkeypatch):
        send = AsyncMock()
        monkeypatch.setattr(aiosmtplib, "send", send)
        sender = SmtpEmailSender(host="smtp.example.com", from_email="no-reply@example.com", brand="Acme")

        await sender.send("a@b.com", "123456", 300)

        message = send.await_args.args[0]
        assert message["To"] == "a@b.com"
        assert message["Subject"] == "Acme verification code"
        assert "123456" in message.get_body(("plain",)).get_content()
        assert send.await_args.kwargs["hostname"] == "smtp.example.com"

    @pytest.mark.asyncio
    async def test_smtp_error_is_channel_unavailable(self, monkeypatch):
        monkeypatch.setattr(aiosmtplib, "send", AsyncMock(side_effect=aiosmtplib.SMTPException("refused")))
        sender = SmtpEmailSender(host="smtp.example.com", from_email="no-reply@example.com")

        with pytest.raises(ChannelUnavailable) as exc_info:
            await sender.send("a@b.com", "123456", 300)

        assert exc_info.value.channel == "email"


class TestLocalSenders:
    @pytest.mark.asyncio
    async def test_in_memory_records_codes(self):
        sender = InMemorySender(OTPChannel.EMAIL)
        await sender.send("a@b.com", "111222", 300)

        assert sender.last_code == "111222"
        assert sender.sent[0].destination == "a@b.com"

    @pytest.mark.asyncio
    async def test_in_memory_failure_mode(self):
        sender = InMemorySender(fail_with="down")

        with pytest.raises(ChannelUnavailable):
            await sender.send("+919999999999", "111222", 300)
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_console_sender(self):
        await ConsoleSender().send("+919999999999", "111222", 300)


def test_otp_message():
    assert otp_message("123456", 300, "Acme") == "Acme verification code is 123456. It expires in 5 minutes."
