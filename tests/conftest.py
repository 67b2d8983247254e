"""
Shared fixtures: a file-backed SQLite store per test, a frozen clock and
in-memory channel senders.
"""

import pytest

from otp_core.clock import FrozenClock
from otp_core.config import OTPAuthConfig
from otp_core.database import (
    close_engine,
    create_async_engine,
    create_session_factory,
    get_session,
    init_models,
)
from otp_core.otp.models import OTPChannel
from otp_core.providers import InMemorySender
from otp_core.rate_limit import InMemoryRateLimiter
from otp_core.service import OTPAuthService

JWT_SECRET = "test-secret-that-is-long-enough-for-hs256"
ADMIN_EMAIL = "admin@co.com"


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def config():
    return OTPAuthConfig(
        jwt_secret=JWT_SECRET,
        environment="test",
        otp_ttl_seconds=300,
        max_attempts=5,
        admin_emails=(ADMIN_EMAIL,),
    )


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'otp.db'}")
    await init_models(eng)
    yield eng
    await close_engine()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Factory for a committed unit of work: ``async with db_session() as db``."""
    return lambda: get_session(session_factory)


@pytest.fixture
def sms_sender():
    return InMemorySender(OTPChannel.SMS)


@pytest.fixture
def email_sender():
    return InMemorySender(OTPChannel.EMAIL)


@pytest.fixture
def service(config, session_factory, sms_sender, email_sender, clock):
    return OTPAuthService(
        config,
        session_factory,
        sms_sender=sms_sender,
        email_sender=email_sender,
        rate_limiter=InMemoryRateLimiter(rate=1000, window=60),
        clock=clock,
    )
