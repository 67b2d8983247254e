"""
OTP Auth Service
================
Request and verify flows over the ledger, identity store and senders.

Usage:
    engine = create_async_engine(config.database_url)
    await init_models(engine)
    service = OTPAuthService(
        config,
        create_session_factory(engine),
        sms_sender=Msg91SmsSender(auth_key=...),
        email_sender=SmtpEmailSender(host=..., from_email=...),
    )
    result = await service.request_otp("+919999999999", client_id=ip)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, List, Optional

import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from . import metrics
from .clock import Clock, SystemClock
from .config import OTPAuthConfig
from .database import get_session
from .errors import (
    ChannelUnavailable,
    InvalidEmail,
    NotRequested,
    OTPAuthError,
    RateLimited,
    StorageUnavailable,
)
from .identity import IdentityResolver
from .models import Identity
from .otp.dual import DualChannelVerifier
from .otp.ledger import OTPLedger
from .otp.models import IssuedChallenge, OTPChannel
from .phone import validate_email
from .providers.base import ChannelSender
from .rate_limit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter, rate_limit_key
from .results import OTPRequestResult, VerifyResult, failure_from
from .roles import RoleCache, RoleResolver
from .sessions import IssuedSession, SessionIssuer

logger = structlog.get_logger(__name__)

RATE_LIMIT_SCOPE = "otp"


class OTPAuthService:
    """
    Facade exposing ``request_otp``, ``verify_otp``, ``request_both_otp``,
    ``verify_both_otp`` and ``sign_out``.

    Every call is one unit of work with its own database session. Expected
    failures come back as result objects; storage faults come back as
    ``STORAGE_UNAVAILABLE`` after being logged.
    """

    def __init__(
        self,
        config: OTPAuthConfig,
        session_factory: async_sessionmaker[AsyncSession],
        sms_sender: ChannelSender,
        email_sender: ChannelSender,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Optional[Clock] = None,
        role_cache: Optional[RoleCache] = None,
    ):
        self.config = config
        self.session_factory = session_factory
        self.senders: Dict[OTPChannel, ChannelSender] = {
            OTPChannel.SMS: sms_sender,
            OTPChannel.EMAIL: email_sender,
        }
        self.clock = clock or SystemClock()
        self.rate_limiter = rate_limiter or default_rate_limiter(config)
        self.identities = IdentityResolver(config.phone_default_country)
        self.ledger = OTPLedger(config, self.clock)
        self.dual = DualChannelVerifier(self.ledger)
        self.roles = RoleResolver(config, role_cache)
        self.sessions = SessionIssuer(config, self.clock)

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    async def request_otp(
        self,
        phone: str,
        *,
        channel: OTPChannel = OTPChannel.SMS,
        email: Optional[str] = None,
        name: Optional[str] = None,
        client_id: str = "anonymous",
    ) -> OTPRequestResult:
        """
        Issue a single-channel code.

        For the email channel the code goes to the identity's stored email
        (filled from ``email`` if it was empty).
        """
        try:
            await self._throttle(client_id)
            email = validate_email(email) if email else None

            async with self._unit_of_work() as db:
                identity = await self._resolve(db, phone, email, name)
                if channel is OTPChannel.SMS:
                    destination = identity.phone
                else:
                    if not identity.email:
                        raise InvalidEmail("An email address is required for email OTP")
                    destination = identity.email
                issued = await self.ledger.issue(db, identity.id, channel, destination)

            return await self._deliver(identity.id, [issued])
        except OTPAuthError as exc:
            return OTPRequestResult.rejected(exc)
        except SQLAlchemyError as exc:
            return OTPRequestResult.rejected(self._storage_fault("request_otp", exc))

    async def request_both_otp(
        self,
        phone: str,
        email: str,
        *,
        name: Optional[str] = None,
        client_id: str = "anonymous",
    ) -> OTPRequestResult:
        """Issue an SMS and an email challenge and send them concurrently."""
        try:
            await self._throttle(client_id)
            email = validate_email(email)

            async with self._unit_of_work() as db:
                identity = await self._resolve(db, phone, email, name)
                issued = await self.dual.issue_both(db, identity.id, identity.phone, identity.email)

            return await self._deliver(identity.id, list(issued))
        except OTPAuthError as exc:
            return OTPRequestResult.rejected(exc)
        except SQLAlchemyError as exc:
            return OTPRequestResult.rejected(self._storage_fault("request_both_otp", exc))

    # ------------------------------------------------------------------
    # Verify path
    # ------------------------------------------------------------------

    async def verify_otp(
        self,
        phone: str,
        code: str,
        *,
        channel: OTPChannel = OTPChannel.SMS,
        client_id: str = "anonymous",
    ) -> VerifyResult:
        """Verify the latest challenge on one channel and issue a session."""
        try:
            await self._throttle(client_id)
            failure: Optional[OTPAuthError] = None

            async with self._unit_of_work() as db:
                identity = await self._require_identity(db, phone)
                try:
                    await self.ledger.verify(db, identity.id, channel, code)
                except OTPAuthError as exc:
                    # Keep the recorded attempt: commit, then report
                    failure = exc
                else:
                    session = await self._complete(db, identity)

            if failure is not None:
                raise failure
            return self._success(identity, session, mode=channel.value)
        except OTPAuthError as exc:
            return self._rejected(exc, mode=channel.value)
        except SQLAlchemyError as exc:
            return self._rejected(self._storage_fault("verify_otp", exc), mode=channel.value)

    async def verify_both_otp(
        self,
        phone: str,
        sms_code: str,
        email_code: str,
        *,
        client_id: str = "anonymous",
    ) -> VerifyResult:
        """Verify both codes as one AND-join and issue a session."""
        try:
            await self._throttle(client_id)
            failure: Optional[OTPAuthError] = None

            async with self._unit_of_work() as db:
                identity = await self._require_identity(db, phone)
                try:
                    await self.dual.verify_both(db, identity.id, sms_code, email_code)
                except OTPAuthError as exc:
                    failure = exc
                else:
                    session = await self._complete(db, identity)

            if failure is not None:
                raise failure
            return self._success(identity, session, mode="dual")
        except OTPAuthError as exc:
            return self._rejected(exc, mode="dual")
        except SQLAlchemyError as exc:
            return self._rejected(self._storage_fault("verify_both_otp", exc), mode="dual")

    async def sign_out(self, token: str) -> bool:
        """
        Revoke a session and drop the cached role of its subject.

        Expired tokens are accepted so their subject's role is still
        dropped. Storage faults are logged and reported as ``False``.

        Returns:
            True if an active session was revoked
        """
        try:
            claims = self.sessions.decode(token, verify_exp=False)
        except jwt.InvalidTokenError:
            claims = {}

        subject = claims.get("sub")
        if subject is not None and str(subject).isdigit():
            self.roles.cache.invalidate(int(subject))

        try:
            async with self._unit_of_work() as db:
                return await self.sessions.revoke(db, token)
        except SQLAlchemyError as exc:
            self._storage_fault("sign_out", exc)
            return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncGenerator[AsyncSession, None]:
        async with get_session(self.session_factory) as db:
            yield db

    async def _throttle(self, client_id: str) -> None:
        info = await self.rate_limiter.check(rate_limit_key(RATE_LIMIT_SCOPE, client_id))
        if not info.allowed:
            metrics.record_rate_limited()
            logger.warning("OTP rate limit exceeded", client_id=client_id, retry_after=info.retry_after)
            raise RateLimited(retry_after=info.retry_after)

    async def _resolve(
        self,
        db: AsyncSession,
        phone: str,
        email: Optional[str],
        name: Optional[str],
    ) -> Identity:
        user_id = await self.identities.resolve_or_create(db, phone, email=email, name=name)
        identity = await self.identities.get(db, user_id)
        await db.refresh(identity)
        if email and identity.email != email:
            logger.info("Requested email differs from stored email; using stored", user_id=user_id)
        return identity

    async def _require_identity(self, db: AsyncSession, phone: str) -> Identity:
        identity = await self.identities.find_by_phone(db, phone)
        if identity is None:
            raise NotRequested()
        return identity

    async def _complete(self, db: AsyncSession, identity: Identity) -> IssuedSession:
        await self.identities.mark_verified(db, identity.id)
        await db.refresh(identity)
        role = await self.roles.resolve(db, identity)
        return await self.sessions.issue(db, identity, role)

    def _success(self, identity: Identity, session: IssuedSession, mode: str) -> VerifyResult:
        metrics.record_verification(mode, "ok")
        return VerifyResult(
            ok=True,
            user_id=identity.id,
            token=session.token,
            expires_at=session.expires_at,
            role=session.role,
            is_verified=True,
        )

    def _rejected(self, exc: OTPAuthError, mode: str) -> VerifyResult:
        metrics.record_verification(mode, exc.kind.value)
        return VerifyResult.rejected(exc)

    async def _deliver(self, user_id: int, issued: List[IssuedChallenge]) -> OTPRequestResult:
        """
        Dispatch committed challenges.

        In debug mode (never in production) the codes are returned instead
        of being sent.
        """
        result = OTPRequestResult(
            ok=True,
            user_id=user_id,
            expires_in_seconds=self.config.otp_ttl_seconds,
            challenge_ids={c.channel.value: c.id for c in issued},
        )
        for challenge in issued:
            metrics.record_issued(challenge.channel.value)

        if self.config.expose_debug_code:
            logger.warning("OTP debug mode: returning codes instead of sending", user_id=user_id)
            result.debug_codes = {c.channel.value: c.code for c in issued}
            return result

        outcomes = await asyncio.gather(*(self._send(c) for c in issued))
        result.failed_channels = [c.channel.value for c, sent in zip(issued, outcomes) if not sent]

        if result.failed_channels:
            result.ok = False
            result.failure = failure_from(_channel_failure(result.failed_channels))
        return result

    async def _send(self, challenge: IssuedChallenge) -> bool:
        sender = self.senders[challenge.channel]
        channel = challenge.channel.value
        sent = False
        try:
            with metrics.track_dispatch(channel, sender.name):
                await sender.send(challenge.destination, challenge.code, self.config.otp_ttl_seconds)
            sent = True
        except OTPAuthError:
            pass
        except Exception:
            logger.exception(
                "Channel sender crashed",
                provider=sender.name,
                challenge_id=challenge.id,
            )
        metrics.record_dispatch(channel, sender.name, sent)
        return sent

    def _storage_fault(self, operation: str, exc: SQLAlchemyError) -> StorageUnavailable:
        logger.error("Storage fault", operation=operation, error=str(exc), exc_info=exc)
        return StorageUnavailable(operation=operation)


def _channel_failure(channels: List[str]) -> OTPAuthError:
    if len(channels) == 1:
        return ChannelUnavailable(f"Failed to send the {channels[0]} code. Try resending", channel=channels[0])
    return ChannelUnavailable(channel=",".join(channels))


def default_rate_limiter(config: OTPAuthConfig) -> RateLimiter:
    """Redis when ``REDIS_URL`` is configured, process memory otherwise."""
    if config.redis_url:
        return RedisRateLimiter.from_url(
            config.redis_url,
            rate=config.rate_limit_max,
            window=config.rate_limit_window_seconds,
        )
    return InMemoryRateLimiter(rate=config.rate_limit_max, window=config.rate_limit_window_seconds)
