"""
Role Resolution
===============
Maps a verified identity to ``client`` or ``admin`` via the admin allowlist.
"""

import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from .config import OTPAuthConfig
from .models import AdminUser, Identity
from .phone import normalize_email

logger = structlog.get_logger(__name__)


class Role(str, Enum):
    CLIENT = "client"
    ADMIN = "admin"


class RoleCache:
    """
    In-memory role memo with a bounded TTL.

    Invalidate on sign-out so a revoked admin does not keep the role
    for the rest of the TTL.
    """

    def __init__(self, ttl_seconds: int = 60, timer: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._cache: Dict[int, Tuple[Role, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> Optional[Role]:
        with self._lock:
            entry = self._cache.get(user_id)
            if entry is None:
                return None
            role, stored_at = entry
            if self._timer() - stored_at > self.ttl_seconds:
                del self._cache[user_id]
                return None
            return role

    def set(self, user_id: int, role: Role) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._cache[user_id] = (role, self._timer())

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._cache.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


class RoleResolver:
    """Resolves roles; data-layer errors fall back to ``client``."""

    def __init__(self, config: OTPAuthConfig, cache: Optional[RoleCache] = None):
        self.config = config
        self.cache = cache if cache is not None else RoleCache(config.role_cache_ttl_seconds)

    async def resolve(self, db: AsyncSession, identity: Identity) -> Role:
        """
        Resolve the role for ``identity``.

        Configured admin emails bootstrap an active allowlist row.
        """
        cached = self.cache.get(identity.id)
        if cached is not None:
            return cached

        email = normalize_email(identity.email) if identity.email else None
        if not email:
            return Role.CLIENT

        try:
            async with db.begin_nested():
                if self.config.is_admin_email(email):
                    await self._ensure_admin(db, email, identity.name)
                    role = Role.ADMIN
                elif await self._is_allowlisted(db, email):
                    role = Role.ADMIN
                else:
                    role = Role.CLIENT
        except SQLAlchemyError as exc:
            logger.error("Role lookup failed, defaulting to client", user_id=identity.id, error=str(exc))
            return Role.CLIENT

        self.cache.set(identity.id, role)
        return role

    async def _is_allowlisted(self, db: AsyncSession, email: str) -> bool:
        result = await db.execute(
            select(AdminUser.is_active).where(AdminUser.email == email).limit(1)
        )
        return bool(result.scalar_one_or_none())

    async def _ensure_admin(self, db: AsyncSession, email: str, name: Optional[str]) -> None:
        """Idempotent upsert of an active allowlist row."""
        async with db.begin_nested():
            result = await db.execute(
                update(AdminUser)
                .where(AdminUser.email == email)
                .values(is_active=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return

        try:
            async with db.begin_nested():
                db.add(AdminUser(email=email, name=name, is_active=True))
                await db.flush()
            logger.info("Admin allowlist bootstrapped", email=email)
        except IntegrityError:
            # Inserted concurrently; the other writer set is_active=True
            logger.debug("Admin allowlist row already present", email=email)
