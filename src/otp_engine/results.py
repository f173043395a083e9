"""Typed results returned by every engine operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from .exceptions import VerificationFailedError

T = TypeVar("T")


class FailureKind(Enum):
    """Business failure kinds.

    None of these represent an infrastructure fault; those raise
    :class:`~otp_engine.exceptions.StoreUnavailableError` instead.
    """

    IDENTITY_MISMATCH = "identity_mismatch"
    UNKNOWN_SUBJECT = "unknown_subject"
    RATE_LIMITED = "rate_limited"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    ATTEMPTS_EXCEEDED = "attempts_exceeded"
    REPLAY_DETECTED = "replay_detected"
    NOT_CONFIGURED = "not_configured"
    ALREADY_ENABLED = "already_enabled"


@dataclass(frozen=True)
class Failure:
    """A business failure with a user-presentable message.

    The message never contains the expected code or a secret.
    """

    kind: FailureKind
    message: str
    reset_in_seconds: int | None = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an engine operation.

    Usage::

        result = await engine.email.verify("u1", "123456")
        if result.ok:
            print(result.value.verified_at)
        elif result.failure.kind is FailureKind.RATE_LIMITED:
            print(result.failure.reset_in_seconds)
    """

    value: T | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    # ── Factory methods ──────────────────────────────────────────

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        kind: FailureKind,
        message: str,
        *,
        reset_in_seconds: int | None = None,
    ) -> Result[T]:
        return cls(failure=Failure(kind, message, reset_in_seconds))

    # ── Access ───────────────────────────────────────────────────

    @property
    def kind(self) -> FailureKind | None:
        """Failure kind, or ``None`` on success."""
        return self.failure.kind if self.failure else None

    def unwrap(self) -> T:
        """Return the value or raise :class:`VerificationFailedError`."""
        if self.failure is not None:
            raise VerificationFailedError(self.failure)
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.ok


# ── Success payloads ─────────────────────────────────────────────


@dataclass(frozen=True)
class CodeIssued:
    """Returned by a channel ``generate`` call.

    ``code`` is handed to the caller for delivery and kept out of ``repr``
    so it does not end up in logs by accident.
    """

    code: str = field(repr=False)
    expires_in: int
    remaining: int


@dataclass(frozen=True)
class CodeVerified:
    verified_at: datetime


@dataclass(frozen=True)
class TotpSecretIssued:
    """TOTP enrolment data shown to the user once.

    Attributes:
        secret: Base32-encoded secret.
        provisioning_uri: ``otpauth://`` URI for QR code generation.
        manual_key: Secret in groups of 4 for manual entry.
        expires_in: Seconds left to confirm the setup.
    """

    secret: str = field(repr=False)
    provisioning_uri: str = field(repr=False)
    manual_key: str = field(repr=False)
    expires_in: int


@dataclass(frozen=True)
class TotpEnabled:
    backup_codes: list[str] = field(repr=False)
    enabled_at: datetime


__all__: list[str] = [
    "FailureKind",
    "Failure",
    "Result",
    "CodeIssued",
    "CodeVerified",
    "TotpSecretIssued",
    "TotpEnabled",
]
