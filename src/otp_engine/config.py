"""Engine configuration.

All tunables live in frozen dataclasses passed to constructors; nothing is
read from module-level globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RateLimitPolicy(Enum):
    """What the rate limiter does when the store is unreachable.

    FAIL_OPEN favours availability: the operation proceeds as if the
    counter were empty. FAIL_CLOSED propagates the store error.
    """

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


@dataclass(frozen=True)
class RateLimitConfig:
    """Fixed-window rate limit configuration.

    Attributes:
        max_attempts: Operations allowed per window.
        window_seconds: Window length in seconds.
        policy: Behaviour on store failure.
    """

    max_attempts: int = 5
    window_seconds: int = 900  # 15 minutes
    policy: RateLimitPolicy = RateLimitPolicy.FAIL_OPEN


@dataclass(frozen=True)
class ChannelConfig:
    """Email/SMS code configuration.

    Attributes:
        code_length: Number of digits in the code.
        ttl_seconds: Lifetime of an issued code.
        max_attempts: Verification attempts per issued code.
        generate_limit: Rate limit applied to ``generate``.
        verify_limit: Rate limit applied to ``verify``.
    """

    code_length: int = 6
    ttl_seconds: int = 300  # 5 minutes
    max_attempts: int = 5
    generate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    verify_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


@dataclass(frozen=True)
class TotpConfig:
    """TOTP configuration.

    Attributes:
        issuer: Application name shown in authenticator apps.
        digits: Number of digits in a TOTP code.
        interval: Time step in seconds.
        valid_window: Accept codes ±N steps for clock drift.
        setup_ttl_seconds: Lifetime of an unconfirmed setup session.
        replay_ttl_seconds: Lifetime of the used-code marker; raised to the
            span of the drift window, ``(2 * valid_window + 1) * interval``,
            when shorter.
        backup_code_count: Backup codes issued on confirmation.
        verify_limit: Rate limit applied to ``verify``.
    """

    issuer: str = "SecureApp"
    digits: int = 6
    interval: int = 30
    valid_window: int = 2
    setup_ttl_seconds: int = 600  # 10 minutes
    replay_ttl_seconds: int = 90
    backup_code_count: int = 8
    verify_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


@dataclass(frozen=True)
class EngineConfig:
    email: ChannelConfig = field(default_factory=ChannelConfig)
    sms: ChannelConfig = field(default_factory=ChannelConfig)
    totp: TotpConfig = field(default_factory=TotpConfig)


__all__: list[str] = [
    "RateLimitPolicy",
    "RateLimitConfig",
    "ChannelConfig",
    "TotpConfig",
    "EngineConfig",
]
