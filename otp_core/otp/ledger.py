"""
OTP Ledger
==========
Append-only store of issued challenges and the single-channel
verification state machine.

Each challenge moves ``Issued -> Consumed | Expired | Invalid``. Only the
most recent challenge per (user, channel) is authoritative; older rows stay
for audit.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..clock import Clock, SystemClock, ensure_utc
from ..config import OTPAuthConfig
from ..errors import (
    AlreadyConsumed,
    Expired,
    InvalidCode,
    NotRequested,
    TooManyAttempts,
)
from ..models import OtpChallenge
from .hashing import generate_otp, generate_salt, hash_otp, verify_otp_hash
from .models import ChallengeState, IssuedChallenge, OTPChannel

logger = structlog.get_logger(__name__)


class OTPLedger:
    """Issues challenges and runs single-channel verification."""

    def __init__(self, config: OTPAuthConfig, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or SystemClock()

    async def issue(
        self,
        db: AsyncSession,
        user_id: int,
        channel: OTPChannel,
        destination: str,
    ) -> IssuedChallenge:
        """
        Generate a code and persist its salted hash.

        Args:
            db: Open session (caller owns the transaction)
            user_id: Identity the challenge belongs to
            channel: Delivery channel
            destination: Normalized phone or email

        Returns:
            IssuedChallenge carrying the plain code for dispatch
        """
        code = generate_otp(self.config.otp_length)
        salt = generate_salt()
        now = self.clock.now()
        expires_at = now + timedelta(seconds=self.config.otp_ttl_seconds)

        row = OtpChallenge(
            user_id=user_id,
            channel=channel.value,
            destination=destination,
            code_hash=hash_otp(code, salt),
            salt=salt,
            attempts=0,
            created_at=now,
            expires_at=expires_at,
        )
        db.add(row)
        await db.flush()

        logger.info(
            "OTP challenge issued",
            challenge_id=row.id,
            user_id=user_id,
            channel=channel.value,
            expires_in=self.config.otp_ttl_seconds,
        )

        return IssuedChallenge(
            id=row.id,
            user_id=user_id,
            channel=channel,
            destination=destination,
            code=code,
            expires_at=expires_at,
        )

    async def latest(
        self,
        db: AsyncSession,
        user_id: int,
        channel: OTPChannel,
    ) -> Optional[OtpChallenge]:
        """Most recently created challenge for (user, channel)."""
        result = await db.execute(
            select(OtpChallenge)
            .where(
                OtpChallenge.user_id == user_id,
                OtpChallenge.channel == channel.value,
            )
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def state_of(self, challenge: OtpChallenge) -> ChallengeState:
        if challenge.consumed_at is not None:
            return ChallengeState.CONSUMED
        if self.clock.now() > ensure_utc(challenge.expires_at):
            return ChallengeState.EXPIRED
        if challenge.attempts >= self.config.max_attempts:
            return ChallengeState.INVALID
        return ChallengeState.ISSUED

    def check(self, challenge: Optional[OtpChallenge], code: str) -> None:
        """
        Validate a submitted code without side effects.

        Raises:
            NotRequested, AlreadyConsumed, Expired, TooManyAttempts, InvalidCode
        """
        if challenge is None:
            raise NotRequested()

        state = self.state_of(challenge)
        if state is ChallengeState.CONSUMED:
            raise AlreadyConsumed()
        if state is ChallengeState.EXPIRED:
            raise Expired()
        if state is ChallengeState.INVALID:
            raise TooManyAttempts()

        if not verify_otp_hash(code or "", challenge.salt, challenge.code_hash):
            raise InvalidCode(remaining=self.config.max_attempts - challenge.attempts - 1)

    async def record_failure(self, db: AsyncSession, challenge: OtpChallenge) -> None:
        """Count one wrong guess against the challenge."""
        await db.execute(
            update(OtpChallenge)
            .where(
                OtpChallenge.id == challenge.id,
                OtpChallenge.attempts < self.config.max_attempts,
            )
            .values(attempts=OtpChallenge.attempts + 1)
        )
        logger.warning(
            "Invalid OTP attempt",
            challenge_id=challenge.id,
            channel=challenge.channel,
        )

    async def consume(self, db: AsyncSession, challenge: OtpChallenge) -> None:
        """
        Mark a challenge consumed.

        The conditional update is the linearization point: of several
        concurrent callers only one sees a row change.

        Raises:
            AlreadyConsumed: If another caller consumed it first
        """
        result = await db.execute(
            update(OtpChallenge)
            .where(
                OtpChallenge.id == challenge.id,
                OtpChallenge.consumed_at.is_(None),
            )
            .values(consumed_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("OTP consume lost race", challenge_id=challenge.id)
            raise AlreadyConsumed()

    async def verify(
        self,
        db: AsyncSession,
        user_id: int,
        channel: OTPChannel,
        code: str,
    ) -> OtpChallenge:
        """
        Verify and consume the latest challenge for (user, channel).

        A wrong code is recorded as a failed attempt before ``InvalidCode``
        propagates; the caller must commit that write.
        """
        challenge = await self.latest(db, user_id, channel)
        try:
            self.check(challenge, code)
        except InvalidCode:
            await self.record_failure(db, challenge)
            raise

        await self.consume(db, challenge)
        logger.info("OTP verified", challenge_id=challenge.id, channel=channel.value)
        return challenge
