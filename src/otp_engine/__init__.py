"""otp-engine

Second-factor verification: "Is it really you?"

Issues and validates short-lived email/SMS codes and TOTP authenticator
codes, with fixed-window rate limiting, attempt-bounded verification and
replay prevention. Storage and identity are injected through ports; sending
codes is left to the application.

Usage:
    ```python
    from otp_engine import FailureKind, OtpEngine

    engine = OtpEngine.from_redis_url("redis://localhost:6379/0", identity)

    issued = await engine.sms.generate("u1", "+15551234567")
    if issued.ok:
        await sms_gateway.send("+15551234567", issued.value.code)

    result = await engine.sms.verify("u1", "123456")
    if result.kind is FailureKind.ATTEMPTS_EXCEEDED:
        ...
    ```

Submodules:
    - `channel`: email/SMS code flow
    - `totp`: authenticator enrolment and verification
    - `rate_limit`: fixed-window limiter
    - `stores`: in-memory and Redis ephemeral stores
    - `status`: masked configuration summary
    - `instrumentation`: hooks around store calls
"""

from __future__ import annotations

from .channel import Channel, ChannelVerifier, VerificationRecord
from .codes import constant_time_equals, generate_backup_codes, generate_numeric_code
from .config import (
    ChannelConfig,
    EngineConfig,
    RateLimitConfig,
    RateLimitPolicy,
    TotpConfig,
)
from .engine import OtpEngine
from .exceptions import (
    InfrastructureError,
    OtpEngineError,
    StoreUnavailableError,
    VerificationFailedError,
)
from .identity import InMemoryIdentityLookup
from .instrumentation import (
    HookRegistry,
    SlowCallLogger,
    StoreCall,
    get_hook_registry,
    set_hook_registry,
)
from .ports import IdentityProfile, IEphemeralStore, IIdentityLookup, TotpCredential
from .rate_limit import RateLimitDecision, RateLimiter
from .results import (
    CodeIssued,
    CodeVerified,
    Failure,
    FailureKind,
    Result,
    TotpEnabled,
    TotpSecretIssued,
)
from .status import ChannelStatus, MfaStatus, StatusAggregator, TotpStatus
from .stores import InMemoryEphemeralStore, RedisEphemeralStore
from .totp import TotpManager, TotpSetupSession, TotpState, provisioning_qr_code

__all__: list[str] = [
    # Engine
    "OtpEngine",
    # Ports
    "IEphemeralStore",
    "IIdentityLookup",
    "IdentityProfile",
    "TotpCredential",
    # Stores
    "InMemoryEphemeralStore",
    "RedisEphemeralStore",
    "InMemoryIdentityLookup",
    # Components
    "Channel",
    "ChannelVerifier",
    "VerificationRecord",
    "TotpManager",
    "TotpSetupSession",
    "TotpState",
    "provisioning_qr_code",
    "RateLimiter",
    "RateLimitDecision",
    "StatusAggregator",
    "MfaStatus",
    "ChannelStatus",
    "TotpStatus",
    # Instrumentation
    "HookRegistry",
    "StoreCall",
    "SlowCallLogger",
    "get_hook_registry",
    "set_hook_registry",
    # Codes
    "generate_numeric_code",
    "generate_backup_codes",
    "constant_time_equals",
    # Config
    "EngineConfig",
    "ChannelConfig",
    "TotpConfig",
    "RateLimitConfig",
    "RateLimitPolicy",
    # Results
    "Result",
    "Failure",
    "FailureKind",
    "CodeIssued",
    "CodeVerified",
    "TotpSecretIssued",
    "TotpEnabled",
    # Exceptions
    "OtpEngineError",
    "InfrastructureError",
    "StoreUnavailableError",
    "VerificationFailedError",
]
