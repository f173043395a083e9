"""TOTP (Time-based One-Time Password) enrolment and verification.

Works with any RFC 6238 authenticator app (Google Authenticator,
Microsoft Authenticator, Authy, 1Password, FreeOTP, ...).

Enrolment is a two-phase commit: ``generate_secret`` opens a short-lived
setup session in the ephemeral store, ``confirm_setup`` proves the user's
app produces matching codes and only then persists the credential through
the identity lookup.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from io import BytesIO
from typing import TYPE_CHECKING, Any

import pyotp

from .codes import generate_backup_codes
from .config import TotpConfig
from .observability import record_issued, record_verification
from .results import (
    CodeVerified,
    FailureKind,
    Result,
    TotpEnabled,
    TotpSecretIssued,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .ports import IEphemeralStore, IIdentityLookup
    from .rate_limit import RateLimiter

logger = logging.getLogger("otp_engine.totp")


class TotpState(Enum):
    """Per-subject TOTP enrolment state."""

    NOT_CONFIGURED = "not_configured"
    PENDING_CONFIRMATION = "pending_confirmation"
    ENABLED = "enabled"


@dataclass(frozen=True)
class TotpSetupSession:
    """Unconfirmed enrolment, alive for ``TotpConfig.setup_ttl_seconds``."""

    subject_id: str
    secret: str
    provisioning_uri: str
    created_at: float
    ttl: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "secret": self.secret,
            "provisioning_uri": self.provisioning_uri,
            "created_at": self.created_at,
            "ttl": self.ttl,
            "confirmed": False,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TotpSetupSession:
        return cls(
            subject_id=data["subject_id"],
            secret=data["secret"],
            provisioning_uri=data["provisioning_uri"],
            created_at=float(data["created_at"]),
            ttl=int(data["ttl"]),
        )


def format_manual_key(secret: str) -> str:
    """Format a base32 secret as groups of 4 characters for manual entry."""
    secret = secret.rstrip("=")
    return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))


def provisioning_qr_code(uri: str) -> str:
    """Render a provisioning URI as a ``data:image/png;base64,...`` QR code.

    Raises:
        ImportError: If ``qrcode`` (with Pillow) is not installed.
    """
    try:
        import qrcode
    except ImportError as e:
        raise ImportError(
            "qrcode is required for QR rendering. "
            "Install with: pip install otp-engine[qr]"
        ) from e

    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


class TotpManager:
    """TOTP lifecycle for authenticator apps.

    State machine per subject::

        NOT_CONFIGURED --generate_secret--> PENDING_CONFIRMATION
        PENDING_CONFIRMATION --confirm_setup--> ENABLED
        PENDING_CONFIRMATION --(setup TTL)--> NOT_CONFIGURED
        ENABLED --disable--> NOT_CONFIGURED

    Example:
        ```python
        totp = TotpManager(
            store=store,
            identity=identity,
            rate_limiter=RateLimiter(store),
            config=TotpConfig(issuer="MyApp"),
        )

        issued = (await totp.generate_secret("u1", "alice@example.com")).unwrap()
        show_qr(provisioning_qr_code(issued.provisioning_uri))

        enabled = await totp.confirm_setup("u1", code_from_app)
        result = await totp.verify("u1", code_from_app_later)
        ```
    """

    def __init__(
        self,
        *,
        store: IEphemeralStore,
        identity: IIdentityLookup,
        rate_limiter: RateLimiter,
        config: TotpConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self.identity = identity
        self.rate_limiter = rate_limiter
        self.config = config or TotpConfig()
        self._clock = clock or time.time

    # ── Keys ─────────────────────────────────────────────────────

    @staticmethod
    def _session_key(subject_id: str) -> str:
        return f"totp:setup:{subject_id}"

    @staticmethod
    def _replay_key(subject_id: str, code: str) -> str:
        return f"totp:used:{subject_id}:{code}"

    @staticmethod
    def _verify_limit_key(subject_id: str) -> str:
        return f"verify:totp:{subject_id}"

    # ── Helpers ──────────────────────────────────────────────────

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret,
            digits=self.config.digits,
            interval=self.config.interval,
            issuer=self.config.issuer,
        )

    def _check_code(self, secret: str, code: str) -> bool:
        """Accept codes within ±valid_window steps of now (constant-time compare)."""
        return self._totp(secret).verify(
            code,
            for_time=int(self._clock()),
            valid_window=self.config.valid_window,
        )

    def _replay_ttl(self) -> int:
        """Marker lifetime; never shorter than the span a code stays acceptable."""
        window_span = (2 * self.config.valid_window + 1) * self.config.interval
        return max(self.config.replay_ttl_seconds, window_span)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), timezone.utc)

    def _fail(
        self,
        subject_id: str,
        kind: FailureKind,
        message: str,
        *,
        reset_in_seconds: int | None = None,
    ) -> Result[Any]:
        logger.info("TOTP operation failed for subject %s: %s", subject_id, kind.value)
        record_verification("totp", kind.value)
        return Result.fail(kind, message, reset_in_seconds=reset_in_seconds)

    async def _enabled_secret(self, subject_id: str) -> str | None:
        profile = await self.identity.find_by_subject(subject_id)
        if profile is None or profile.totp_credential is None:
            return None
        if not profile.totp_credential.enabled:
            return None
        return profile.totp_credential.secret

    # ── Operations ───────────────────────────────────────────────

    async def state(self, subject_id: str) -> TotpState:
        """Current enrolment state of the subject."""
        if await self._enabled_secret(subject_id) is not None:
            return TotpState.ENABLED
        if await self.store.exists(self._session_key(subject_id)):
            return TotpState.PENDING_CONFIRMATION
        return TotpState.NOT_CONFIGURED

    async def generate_secret(
        self, subject_id: str, label: str
    ) -> Result[TotpSecretIssued]:
        """Open a setup session with a fresh secret.

        Replaces any unconfirmed session. Never touches a persisted
        credential: an enabled subject must ``disable`` first.

        Args:
            subject_id: Subject identifier.
            label: Account name shown in the authenticator (usually the email).
        """
        profile = await self.identity.find_by_subject(subject_id)
        if profile is None:
            return self._fail(subject_id, FailureKind.UNKNOWN_SUBJECT, "User not found")
        if profile.totp_credential is not None and profile.totp_credential.enabled:
            return self._fail(
                subject_id,
                FailureKind.ALREADY_ENABLED,
                "TOTP is already enabled. Disable it first.",
            )

        secret = pyotp.random_base32(length=32)
        uri = self._totp(secret).provisioning_uri(
            name=label, issuer_name=self.config.issuer
        )
        session = TotpSetupSession(
            subject_id=subject_id,
            secret=secret,
            provisioning_uri=uri,
            created_at=self._clock(),
            ttl=self.config.setup_ttl_seconds,
        )
        await self.store.set(self._session_key(subject_id), session.to_dict(), session.ttl)

        logger.info("Opened TOTP setup session for subject %s", subject_id)
        record_issued("totp")
        return Result.success(
            TotpSecretIssued(
                secret=secret,
                provisioning_uri=uri,
                manual_key=format_manual_key(secret),
                expires_in=session.ttl,
            )
        )

    async def confirm_setup(self, subject_id: str, code: str) -> Result[TotpEnabled]:
        """Verify the first code from the app and enable TOTP.

        On success the credential is persisted, the session deleted, and
        the confirming code is marked used so it cannot be replayed.
        """
        session_key = self._session_key(subject_id)
        data = await self.store.get(session_key)
        if data is None:
            return self._fail(
                subject_id,
                FailureKind.EXPIRED,
                "TOTP setup session expired. Please restart setup.",
            )

        session = TotpSetupSession.from_dict(data)
        code = str(code).strip()
        if not self._check_code(session.secret, code):
            return self._fail(subject_id, FailureKind.INVALID_CODE, "Invalid TOTP code")

        await self.identity.persist_totp_credential(subject_id, session.secret)
        await self.store.delete(session_key)
        await self.store.increment(
            self._replay_key(subject_id, code), self._replay_ttl()
        )

        logger.info("TOTP enabled for subject %s", subject_id)
        record_verification("totp", "success")
        return Result.success(
            TotpEnabled(
                backup_codes=generate_backup_codes(self.config.backup_code_count),
                enabled_at=self._now(),
            )
        )

    async def verify(self, subject_id: str, code: str) -> Result[CodeVerified]:
        """Verify a code against the persisted secret.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
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

        secret = await self._enabled_secret(subject_id)
        if secret is None:
            return self._fail(
                subject_id,
                FailureKind.NOT_CONFIGURED,
                "TOTP not configured for this user",
            )

        code = str(code).strip()
        replay_key = self._replay_key(subject_id, code)
        if await self.store.exists(replay_key):
            return self._fail(
                subject_id, FailureKind.REPLAY_DETECTED, "TOTP code already used"
            )

        if not self._check_code(secret, code):
            return self._fail(subject_id, FailureKind.INVALID_CODE, "Invalid TOTP code")

        # Claiming the marker atomically closes the gap between the exists
        # check above and this write for two concurrent submissions.
        if await self.store.increment(replay_key, self._replay_ttl()) > 1:
            return self._fail(
                subject_id, FailureKind.REPLAY_DETECTED, "TOTP code already used"
            )

        await self.rate_limiter.reset(verify_limit_key)

        logger.info("Verified TOTP code for subject %s", subject_id)
        record_verification("totp", "success")
        return Result.success(CodeVerified(verified_at=self._now()))

    async def disable(self, subject_id: str) -> None:
        """Remove the credential and any pending setup. Idempotent."""
        await self.identity.clear_totp_credential(subject_id)
        await self.store.delete(self._session_key(subject_id))
        logger.info("TOTP disabled for subject %s", subject_id)


__all__: list[str] = [
    "TotpState",
    "TotpSetupSession",
    "TotpManager",
    "format_manual_key",
    "provisioning_qr_code",
]
