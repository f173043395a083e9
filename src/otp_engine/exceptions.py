"""Exceptions for otp-engine.

Business outcomes (wrong code, expired code, rate limited, ...) are NOT
exceptions: they are returned as :class:`~otp_engine.results.Result` failures.
Only infrastructure faults raise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .results import Failure


class OtpEngineError(Exception):
    """Root exception for the entire otp-engine package."""


class InfrastructureError(OtpEngineError):
    """Base class for all infrastructure-related errors."""


class StoreUnavailableError(InfrastructureError):
    """Raised when the ephemeral store cannot be reached or times out.

    Must never be translated into "invalid code" or "code valid": callers
    should surface it as a hard failure.
    """

    def __init__(self, operation: str, reason: str | None = None) -> None:
        self.operation = operation
        self.reason = reason

        msg = f"Ephemeral store unavailable during {operation}"
        if reason:
            msg += f" - {reason}"

        super().__init__(msg)


class VerificationFailedError(OtpEngineError):
    """Raised by ``Result.unwrap()`` when a business failure is unwrapped.

    Attributes:
        failure: The typed failure that was unwrapped.
    """

    def __init__(self, failure: Failure) -> None:
        self.failure = failure
        super().__init__(f"{failure.kind.value}: {failure.message}")


__all__: list[str] = [
    "OtpEngineError",
    "InfrastructureError",
    "StoreUnavailableError",
    "VerificationFailedError",
]
