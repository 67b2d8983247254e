"""
Tests for dual-channel verification
===================================
"""

import pytest

from otp_core.errors import AlreadyConsumed, InvalidCode, NotRequested
from otp_core.models import Identity, OtpChallenge
from otp_core.otp import DualChannelVerifier, OTPChannel, OTPLedger

PHONE = "+919999999999"
EMAIL = "a@b.com"


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


@pytest.fixture
def ledger(config, clock):
    return OTPLedger(config, clock)


@pytest.fixture
def dual(ledger):
    return DualChannelVerifier(ledger)


@pytest.fixture
async def user_id(db_session):
    async with db_session() as db:
        user = Identity(phone=PHONE, email=EMAIL)
        db.add(user)
        await db.flush()
        return user.id


async def _row(db_session, challenge_id) -> OtpChallenge:
    async with db_session() as db:
        return await db.get(OtpChallenge, challenge_id)


class TestVerifyBoth:
    @pytest.mark.asyncio
    async def test_issue_both_writes_one_challenge_per_channel(self, dual, db_session, user_id):
        async with db_session() as db:
            sms, mail = await dual.issue_both(db, user_id, PHONE, EMAIL)

        assert sms.channel is OTPChannel.SMS and sms.destination == PHONE
        assert mail.channel is OTPChannel.EMAIL and mail.destination == EMAIL
        assert sms.expires_at == mail.expires_at

    @pytest.mark.asyncio
    async def test_both_correct_consumes_both(self, dual, db_session, user_id):
        async with db_session() as db:
            sms, mail = await dual.issue_both(db, user_id, PHONE, EMAIL)

        async with db_session() as db:
            await dual.verify_both(db, user_id, sms.code, mail.code)

        assert (await _row(db_session, sms.id)).consumed_at is not None
        assert (await _row(db_session, mail.id)).consumed_at is not None

    @pytest.mark.asyncio
    async def test_wrong_email_code_leaves_sms_unconsumed(self, dual, db_session, user_id):
        async with db_session() as db:
            sms, mail = await dual.issue_both(db, user_id, PHONE, EMAIL)

        async with db_session() as db:
            with pytest.raises(InvalidCode) as exc_info:
                await dual.verify_both(db, user_id, sms.code, _wrong(mail.code))

        assert exc_info.value.details["failed_channels"] == ["email"]
        sms_row = await _row(db_session, sms.id)
        mail_row = await _row(db_session, mail.id)
        assert sms_row.consumed_at is None
        assert mail_row.consumed_at is None
        assert sms_row.attempts == 0
        assert mail_row.attempts == 1

        # The correct pair still works afterwards
        async with db_session() as db:
            await dual.verify_both(db, user_id, sms.code, mail.code)

    @pytest.mark.asyncio
    async def test_both_wrong_reports_both_channels(self, dual, db_session, user_id):
        async with db_session() as db:
            sms, mail = await dual.issue_both(db, user_id, PHONE, EMAIL)

        async with db_session() as db:
            with pytest.raises(InvalidCode) as exc_info:
                await dual.verify_both(db, user_id, _wrong(sms.code), _wrong(mail.code))

        assert exc_info.value.details["failed_channels"] == ["sms", "email"]

    @pytest.mark.asyncio
    async def test_missing_email_challenge(self, dual, ledger, db_session, user_id):
        async with db_session() as db:
            sms = await ledger.issue(db, user_id, OTPChannel.SMS, PHONE)

        async with db_session() as db:
            with pytest.raises(NotRequested) as exc_info:
                await dual.verify_both(db, user_id, sms.code, "123456")

        assert exc_info.value.details["failed_channels"] == ["email"]
        assert (await _row(db_session, sms.id)).consumed_at is None

    @pytest.mark.asyncio
    async def test_replay_is_rejected(self, dual, db_session, user_id):
        async with db_session() as db:
            sms, mail = await dual.issue_both(db, user_id, PHONE, EMAIL)
        async with db_session() as db:
            await dual.verify_both(db, user_id, sms.code, mail.code)

        async with db_session() as db:
            with pytest.raises(AlreadyConsumed):
                await dual.verify_both(db, user_id, sms.code, mail.code)
