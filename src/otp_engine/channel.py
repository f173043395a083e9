"""Email/SMS one-time code issuance and verification.

The engine generates and checks codes; sending them is left to the caller,
who receives the code from :meth:`ChannelVerifier.generate`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from .codes import constant_time_equals, generate_numeric_code
from .config import ChannelConfig
from .observability import record_issued, record_verification
from .results import CodeIssued, CodeVerified, FailureKind, Result

if TYPE_CHECKING:
    from collections.abc import Callable

    from .ports import IdentityProfile, IEphemeralStore, IIdentityLookup
    from .rate_limit import RateLimiter

logger = logging.getLogger("otp_engine.channel")


class Channel(Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True)
class VerificationRecord:
    """An outstanding code for one (subject, channel).

    The attempt count is kept in a sibling counter key so it can be
    incremented atomically; it is not part of the stored record.
    """

    subject_id: str
    channel: Channel
    code: str
    destination: str
    created_at: float
    max_attempts: int
    ttl: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "channel": self.channel.value,
            "code": self.code,
            "destination": self.destination,
            "created_at": self.created_at,
            "max_attempts": self.max_attempts,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationRecord:
        return cls(
            subject_id=data["subject_id"],
            channel=Channel(data["channel"]),
            code=data["code"],
            destination=data["destination"],
            created_at=float(data["created_at"]),
            max_attempts=int(data["max_attempts"]),
            ttl=int(data["ttl"]),
        )


def normalize_phone(phone: str) -> str:
    """Keep digits and a leading ``+`` (``"+1 (555) 010-9999"`` -> ``"+15550109999"``)."""
    phone = phone.strip()
    prefix = "+" if phone.startswith("+") else ""
    return prefix + "".join(ch for ch in phone if ch.isdigit())


class ChannelVerifier:
    """Generate/verify flow for one delivery channel.

    One instance per channel; all state is partitioned by
    ``{channel}:{subject_id}`` so instances for different channels never
    interact.

    Example:
        ```python
        email = ChannelVerifier(
            Channel.EMAIL,
            store=store,
            identity=identity,
            rate_limiter=RateLimiter(store),
        )

        issued = await email.generate("u1", "a@b.com")
        if issued.ok:
            await mailer.send("a@b.com", issued.value.code)

        result = await email.verify("u1", user_input)
        ```
    """

    def __init__(
        self,
        channel: Channel,
        *,
        store: IEphemeralStore,
        identity: IIdentityLookup,
        rate_limiter: RateLimiter,
        config: ChannelConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.channel = channel
        self.store = store
        self.identity = identity
        self.rate_limiter = rate_limiter
        self.config = config or ChannelConfig()
        self._clock = clock or time.time

    # ── Keys ─────────────────────────────────────────────────────

    def _code_key(self, subject_id: str) -> str:
        return f"code:{self.channel.value}:{subject_id}"

    def _attempts_key(self, subject_id: str) -> str:
        return f"{self._code_key(subject_id)}:attempts"

    def _generate_limit_key(self, subject_id: str) -> str:
        return f"gen:{self.channel.value}:{subject_id}"

    def _verify_limit_key(self, subject_id: str) -> str:
        return f"verify:{self.channel.value}:{subject_id}"

    # ── Helpers ──────────────────────────────────────────────────

    def _profile_destination(self, profile: IdentityProfile) -> str | None:
        if self.channel is Channel.EMAIL:
            return profile.email
        return profile.phone_number

    def _destination_matches(self, expected: str, provided: str) -> bool:
        if self.channel is Channel.EMAIL:
            return expected.strip().casefold() == provided.strip().casefold()
        return normalize_phone(expected) == normalize_phone(provided)

    def _fail(
        self,
        subject_id: str,
        kind: FailureKind,
        message: str,
        *,
        reset_in_seconds: int | None = None,
    ) -> Result[Any]:
        logger.info(
            "%s verification failed for subject %s: %s",
            self.channel.value,
            subject_id,
            kind.value,
        )
        record_verification(self.channel.value, kind.value)
        return Result.fail(kind, message, reset_in_seconds=reset_in_seconds)

    # ── Operations ───────────────────────────────────────────────

    async def generate(self, subject_id: str, destination: str) -> Result[CodeIssued]:
        """Issue a new code, replacing any outstanding one.

        Args:
            subject_id: Subject identifier.
            destination: Email address or phone number the code goes to;
                must match the subject's profile.

        Returns:
            ``CodeIssued`` with the code to deliver, its lifetime and the
            remaining generate budget.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        profile = await self.identity.find_by_subject(subject_id)
        if profile is None:
            return self._fail(subject_id, FailureKind.UNKNOWN_SUBJECT, "User not found")

        expected = self._profile_destination(profile)
        if not expected or not self._destination_matches(expected, destination):
            noun = "Email" if self.channel is Channel.EMAIL else "Phone number"
            return self._fail(
                subject_id, FailureKind.IDENTITY_MISMATCH, f"{noun} mismatch"
            )

        decision = await self.rate_limiter.check(
            self._generate_limit_key(subject_id), self.config.generate_limit
        )
        if not decision.allowed:
            return self._fail(
                subject_id,
                FailureKind.RATE_LIMITED,
                "Too many code requests. Try again later.",
                reset_in_seconds=decision.reset_in_seconds,
            )

        record = VerificationRecord(
            subject_id=subject_id,
            channel=self.channel,
            code=generate_numeric_code(self.config.code_length),
            destination=destination,
            created_at=self._clock(),
            max_attempts=self.config.max_attempts,
            ttl=self.config.ttl_seconds,
        )
        # Last writer wins: a concurrent generate simply invalidates the older code.
        await self.store.delete(self._attempts_key(subject_id))
        await self.store.set(self._code_key(subject_id), record.to_dict(), record.ttl)

        logger.info("Issued %s code for subject %s", self.channel.value, subject_id)
        record_issued(self.channel.value)
        return Result.success(
            CodeIssued(
                code=record.code,
                expires_in=record.ttl,
                remaining=decision.remaining,
            )
        )

    async def verify(self, subject_id: str, input_code: str) -> Result[CodeVerified]:
        """Check a submitted code against the outstanding record.

        The record is single-use: it is deleted on success and when its
        attempt budget runs out.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        code_key = self._code_key(subject_id)
        attempts_key = self._attempts_key(subject_id)

        data = await self.store.get(code_key)
        if data is None:
            return self._fail(
                subject_id,
                FailureKind.EXPIRED,
                "Verification code expired or not found",
            )

        verify_limit_key = self._verify_limit_key(subject_id)
        decision = await self.rate_limiter.check(
            verify_limit_key, self.config.verify_limit
        )
        if not decision.allowed:
            return self._fail(
                subject_id,
                FailureKind.RATE_LIMITED,
                "Too many verification attempts. Try again later.",
                reset_in_seconds=decision.reset_in_seconds,
            )

        record = VerificationRecord.from_dict(data)
        remaining_ttl = await self.store.ttl(code_key)
        if remaining_ttl is None:
            return self._fail(
                subject_id,
                FailureKind.EXPIRED,
                "Verification code expired or not found",
            )

        # TTL can read 0 just before expiry; EXPIRE 0 would drop the counter.
        attempts = await self.store.increment(attempts_key, max(1, remaining_ttl))
        if attempts > record.max_attempts:
            await self.store.delete(code_key, attempts_key)
            return self._fail(
                subject_id,
                FailureKind.ATTEMPTS_EXCEEDED,
                "Maximum verification attempts exceeded",
            )

        if not constant_time_equals(record.code, str(input_code).strip()):
            if attempts >= record.max_attempts:
                await self.store.delete(code_key, attempts_key)
                return self._fail(
                    subject_id,
                    FailureKind.ATTEMPTS_EXCEEDED,
                    "Maximum verification attempts exceeded",
                )
            return self._fail(
                subject_id, FailureKind.INVALID_CODE, "Invalid verification code"
            )

        # DEL is atomic: of two concurrent correct submissions only one deletes.
        if not await self.store.delete(code_key):
            return self._fail(
                subject_id,
                FailureKind.EXPIRED,
                "Verification code expired or not found",
            )
        await self.store.delete(attempts_key)
        await self.rate_limiter.reset(verify_limit_key)

        logger.info("Verified %s code for subject %s", self.channel.value, subject_id)
        record_verification(self.channel.value, "success")
        return Result.success(
            CodeVerified(verified_at=datetime.fromtimestamp(self._clock(), timezone.utc))
        )

    async def has_active_code(self, subject_id: str) -> bool:
        """Whether an unexpired, unconsumed code exists for the subject."""
        return await self.store.exists(self._code_key(subject_id))

    async def cancel(self, subject_id: str) -> None:
        """Drop any outstanding code for the subject."""
        await self.store.delete(self._code_key(subject_id), self._attempts_key(subject_id))


__all__: list[str] = [
    "Channel",
    "VerificationRecord",
    "ChannelVerifier",
    "normalize_phone",
]
