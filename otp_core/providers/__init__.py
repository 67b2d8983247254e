"""
OTP Channel Senders
===================
SMS and email delivery behind the ``ChannelSender`` contract.
"""

from .base import ChannelSender
from .msg91 import Msg91SmsSender
from .twilio import TwilioSmsSender
from .smtp import SmtpEmailSender
from .memory import ConsoleSender, InMemorySender, SentCode

__all__ = [
    "ChannelSender",
    "Msg91SmsSender",
    "TwilioSmsSender",
    "SmtpEmailSender",
    "ConsoleSender",
    "InMemorySender",
    "SentCode",
]
