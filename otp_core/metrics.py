"""
Prometheus Metrics
==================
Counters and latency histograms for the OTP request and verify paths.

All metrics live in ``OTP_REGISTRY`` so a host application can expose them
next to its own registry:

    from prometheus_client import generate_latest
    from otp_core.metrics import OTP_REGISTRY

    body = generate_latest(OTP_REGISTRY)
"""

from contextlib import contextmanager
from time import perf_counter
from typing import Iterator

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

OTP_REGISTRY = CollectorRegistry()

OTP_ISSUED_TOTAL = Counter(
    name="otp_challenges_issued_total",
    documentation="OTP challenges written to the ledger",
    labelnames=["channel"],
    registry=OTP_REGISTRY,
)

OTP_DISPATCH_TOTAL = Counter(
    name="otp_dispatch_total",
    documentation="OTP deliveries by provider and outcome",
    labelnames=["channel", "provider", "outcome"],
    registry=OTP_REGISTRY,
)

OTP_DISPATCH_LATENCY = Histogram(
    name="otp_dispatch_duration_seconds",
    documentation="Time spent handing a code to the channel provider",
    labelnames=["channel", "provider"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0],
    registry=OTP_REGISTRY,
)

OTP_VERIFY_TOTAL = Counter(
    name="otp_verifications_total",
    documentation="Verification attempts by mode and outcome",
    labelnames=["mode", "outcome"],
    registry=OTP_REGISTRY,
)

OTP_RATE_LIMITED_TOTAL = Counter(
    name="otp_rate_limited_total",
    documentation="Calls rejected by the rate limiter",
    registry=OTP_REGISTRY,
)


def record_issued(channel: str) -> None:
    OTP_ISSUED_TOTAL.labels(channel=channel).inc()


def record_dispatch(channel: str, provider: str, sent: bool) -> None:
    OTP_DISPATCH_TOTAL.labels(
        channel=channel,
        provider=provider,
        outcome="sent" if sent else "failed",
    ).inc()


def record_verification(mode: str, outcome: str) -> None:
    """``outcome`` is ``ok`` or an ``ErrorKind`` value."""
    OTP_VERIFY_TOTAL.labels(mode=mode, outcome=outcome).inc()


def record_rate_limited() -> None:
    OTP_RATE_LIMITED_TOTAL.inc()


@contextmanager
def track_dispatch(channel: str, provider: str) -> Iterator[None]:
    start = perf_counter()
    try:
        yield
    finally:
        OTP_DISPATCH_LATENCY.labels(channel=channel, provider=provider).observe(perf_counter() - start)


def export_metrics() -> bytes:
    """Prometheus text exposition of ``OTP_REGISTRY``."""
    return generate_latest(OTP_REGISTRY)
