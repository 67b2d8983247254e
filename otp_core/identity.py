"""
Identity Resolver
=================
Find-or-create user identities keyed by E.164 phone.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from .errors import DuplicateIdentity, StorageUnavailable
from .models import Identity
from .phone import mask_phone, normalize_email, normalize_phone

logger = structlog.get_logger(__name__)


def _clean_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    return name or None


class IdentityResolver:
    """
    Resolves identities by phone with coalesce-only enrichment.

    The UNIQUE constraint on ``users.phone`` decides the race between two
    first-time requests for the same number; the loser re-reads.
    """

    def __init__(self, default_country: str = "91"):
        self.default_country = default_country

    def normalize(self, phone: str) -> str:
        """Normalize to E.164, raising InvalidPhone."""
        return normalize_phone(phone, default_country=self.default_country)

    async def find_by_phone(self, db: AsyncSession, phone: str) -> Optional[Identity]:
        result = await db.execute(
            select(Identity).where(Identity.phone == self.normalize(phone)).limit(1)
        )
        return result.scalar_one_or_none()

    async def get(self, db: AsyncSession, user_id: int) -> Optional[Identity]:
        return await db.get(Identity, user_id)

    async def resolve_or_create(
        self,
        db: AsyncSession,
        phone: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> int:
        """
        Return the identity id for ``phone``, creating it on first sight.

        Args:
            db: Open session
            phone: Raw phone number
            email: Optional email, only fills an empty field
            name: Optional display name, only fills an empty field

        Returns:
            Identity id

        Raises:
            InvalidPhone: Malformed phone
        """
        e164 = self.normalize(phone)
        email = normalize_email(email) if email else None
        name = _clean_name(name)

        existing = await self._lookup(db, e164)
        if existing is not None:
            await self._enrich(db, existing, email, name)
            return existing.id

        try:
            return await self._insert(db, e164, email, name)
        except DuplicateIdentity:
            logger.info("Identity insert lost race, retrying lookup", phone=mask_phone(e164))

        existing = await self._lookup(db, e164)
        if existing is None:
            raise StorageUnavailable("Identity vanished after duplicate insert")
        await self._enrich(db, existing, email, name)
        return existing.id

    async def mark_verified(self, db: AsyncSession, user_id: int) -> None:
        """Flip ``is_verified`` on; never flips it back."""
        await db.execute(
            update(Identity)
            .where(Identity.id == user_id, Identity.is_verified.is_(False))
            .values(is_verified=True)
            .execution_options(synchronize_session=False)
        )

    async def _lookup(self, db: AsyncSession, e164: str) -> Optional[Identity]:
        result = await db.execute(select(Identity).where(Identity.phone == e164).limit(1))
        return result.scalar_one_or_none()

    async def _insert(
        self,
        db: AsyncSession,
        e164: str,
        email: Optional[str],
        name: Optional[str],
    ) -> int:
        row = Identity(phone=e164, email=email, name=name, is_verified=False)
        try:
            async with db.begin_nested():
                db.add(row)
                await db.flush()
        except IntegrityError as exc:
            raise DuplicateIdentity(phone=mask_phone(e164)) from exc

        logger.info("Identity created", user_id=row.id, phone=mask_phone(e164))
        return row.id

    async def _enrich(
        self,
        db: AsyncSession,
        identity: Identity,
        email: Optional[str],
        name: Optional[str],
    ) -> None:
        # Coalesce in SQL so a concurrent enrichment is never overwritten either
        if email:
            await db.execute(
                update(Identity)
                .where(Identity.id == identity.id, Identity.email.is_(None))
                .values(email=email)
                .execution_options(synchronize_session=False)
            )
        if name:
            await db.execute(
                update(Identity)
                .where(Identity.id == identity.id, Identity.name.is_(None))
                .values(name=name)
                .execution_options(synchronize_session=False)
            )
