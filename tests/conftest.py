"""Test configuration and fixtures."""

from __future__ import annotations

import pytest

from otp_engine import (
    IdentityProfile,
    InMemoryEphemeralStore,
    InMemoryIdentityLookup,
    OtpEngine,
    RateLimiter,
)

# Aligned to a 30 second TOTP step boundary.
START_TIME = 1_700_000_010.0


class FakeClock:
    """Manually advanced clock shared by the store and the engine."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that require external services",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryEphemeralStore:
    return InMemoryEphemeralStore(clock=clock)


@pytest.fixture
def identity() -> InMemoryIdentityLookup:
    return InMemoryIdentityLookup(
        [
            IdentityProfile(
                subject_id="u1",
                email="a@b.com",
                phone_number="+15551234567",
            ),
            IdentityProfile(subject_id="no-phone", email="c@d.com"),
        ]
    )


@pytest.fixture
def rate_limiter(store: InMemoryEphemeralStore) -> RateLimiter:
    return RateLimiter(store)


@pytest.fixture
def engine(
    store: InMemoryEphemeralStore,
    identity: InMemoryIdentityLookup,
    clock: FakeClock,
) -> OtpEngine:
    return OtpEngine(store, identity, clock=clock)
