"""
Session Issuer
==============
Signs bearer tokens for verified identities and keeps an audit row per
token (SHA-256 of the token, never the token itself).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from .clock import Clock, SystemClock
from .config import OTPAuthConfig
from .models import AuthSession, Identity
from .otp.hashing import hash_token
from .roles import Role

logger = structlog.get_logger(__name__)

PROVIDER = "otp"


@dataclass(frozen=True)
class IssuedSession:
    """A signed token and its expiry."""
    token: str
    expires_at: datetime
    role: Role

    def __repr__(self) -> str:
        return f"IssuedSession(role={self.role.value}, expires_at={self.expires_at.isoformat()})"


class SessionIssuer:
    """Signs session tokens and records them for audit and revocation."""

    def __init__(self, config: OTPAuthConfig, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or SystemClock()

    def sign(self, identity: Identity, role: Role, issued_at: datetime) -> str:
        expires_at = issued_at + timedelta(seconds=self.config.session_lifetime_seconds)
        claims: Dict[str, Any] = {
            "sub": str(identity.id),
            "role": role.value,
            "provider": PROVIDER,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
        }
        # Optional claims are omitted rather than sent as null
        for claim in ("email", "name", "phone"):
            value = getattr(identity, claim)
            if value:
                claims[claim] = value
        return jwt.encode(claims, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    async def issue(self, db: AsyncSession, identity: Identity, role: Role) -> IssuedSession:
        """
        Sign a 7-day token and write its audit row.

        The audit write runs in a savepoint; if it fails the token is still
        returned and the failure is logged.
        """
        issued_at = self.clock.now()
        expires_at = issued_at + timedelta(seconds=self.config.session_lifetime_seconds)
        token = self.sign(identity, role, issued_at)

        try:
            async with db.begin_nested():
                db.add(AuthSession(
                    user_id=identity.id,
                    token_hash=hash_token(token),
                    issued_at=issued_at,
                    expires_at=expires_at,
                ))
                await db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Session audit write failed",
                user_id=identity.id,
                error=str(exc),
                exc_info=True,
            )

        logger.info("Session issued", user_id=identity.id, role=role.value)
        return IssuedSession(token=token, expires_at=expires_at, role=role)

    def decode(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        """
        Verify signature (and expiry, unless ``verify_exp`` is off) and
        return the claims.

        Raises:
            jwt.InvalidTokenError: Bad signature, malformed or expired token
        """
        return jwt.decode(
            token,
            self.config.jwt_secret,
            algorithms=[self.config.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"], "verify_exp": verify_exp},
        )

    async def is_active(self, db: AsyncSession, token: str) -> bool:
        """True if the token's audit row exists, is unrevoked and unexpired."""
        result = await db.execute(
            select(AuthSession.id)
            .where(
                AuthSession.token_hash == hash_token(token),
                AuthSession.revoked_at.is_(None),
                AuthSession.expires_at > self.clock.now(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def revoke(self, db: AsyncSession, token: str) -> bool:
        """Revoke a session once. Returns False if already revoked or unknown."""
        result = await db.execute(
            update(AuthSession)
            .where(
                AuthSession.token_hash == hash_token(token),
                AuthSession.revoked_at.is_(None),
            )
            .values(revoked_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        revoked = result.rowcount == 1
        if revoked:
            logger.info("Session revoked")
        return revoked
