"""
Dual-Channel Verification
=========================
AND-join over an SMS challenge and an email challenge: both codes are
validated before either challenge is consumed, and both consumptions
commit together or not at all.
"""

from typing import Dict, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..errors import InvalidCode, OTPAuthError
from ..models import OtpChallenge
from .ledger import OTPLedger
from .models import IssuedChallenge, OTPChannel

logger = structlog.get_logger(__name__)


class DualChannelVerifier:
    """Issue and verify paired SMS + email challenges."""

    def __init__(self, ledger: OTPLedger):
        self.ledger = ledger

    async def issue_both(
        self,
        db: AsyncSession,
        user_id: int,
        phone: str,
        email: str,
    ) -> Tuple[IssuedChallenge, IssuedChallenge]:
        """Write one challenge per channel under the same TTL policy."""
        sms = await self.ledger.issue(db, user_id, OTPChannel.SMS, phone)
        mail = await self.ledger.issue(db, user_id, OTPChannel.EMAIL, email)
        return sms, mail

    async def verify_both(
        self,
        db: AsyncSession,
        user_id: int,
        sms_code: str,
        email_code: str,
    ) -> Tuple[OtpChallenge, OtpChallenge]:
        """
        Validate both codes, then consume both atomically.

        Wrong codes still count as attempts on their own challenge, but a
        failure on either side leaves both challenges unconsumed.

        Raises:
            OTPAuthError: The first failure (SMS before email). ``details``
                carries ``failed_channels``.
        """
        sms = await self.ledger.latest(db, user_id, OTPChannel.SMS)
        mail = await self.ledger.latest(db, user_id, OTPChannel.EMAIL)

        failures: Dict[OTPChannel, OTPAuthError] = {}
        for channel, challenge, code in (
            (OTPChannel.SMS, sms, sms_code),
            (OTPChannel.EMAIL, mail, email_code),
        ):
            try:
                self.ledger.check(challenge, code)
            except InvalidCode as exc:
                await self.ledger.record_failure(db, challenge)
                failures[channel] = exc
            except OTPAuthError as exc:
                failures[channel] = exc

        if failures:
            failed = [channel.value for channel in failures]
            logger.warning("Dual OTP verification rejected", user_id=user_id, failed_channels=failed)
            first = next(iter(failures.values()))
            first.details["failed_channels"] = failed
            raise first

        async with db.begin_nested():
            await self.ledger.consume(db, sms)
            await self.ledger.consume(db, mail)

        logger.info("Dual OTP verified", user_id=user_id, sms_challenge=sms.id, email_challenge=mail.id)
        return sms, mail
