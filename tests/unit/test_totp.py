"""Tests for TOTP enrolment and verification."""

from __future__ import annotations

import sys
from unittest.mock import AsyncMock

import pyotp
import pytest

from otp_engine import (
    FailureKind,
    IdentityProfile,
    InMemoryEphemeralStore,
    InMemoryIdentityLookup,
    OtpEngine,
    RateLimiter,
    StoreUnavailableError,
    TotpConfig,
    TotpCredential,
    TotpManager,
    TotpState,
    provisioning_qr_code,
)
from otp_engine.totp import format_manual_key


def code_at(secret: str, clock, offset: int = 0) -> str:
    return pyotp.TOTP(secret).at(int(clock.now) + offset)


async def enrol(engine: OtpEngine, clock, subject_id: str = "u1") -> str:
    """Run a full enrolment and return the secret."""
    issued = (await engine.totp.generate_secret(subject_id, "a@b.com")).unwrap()
    (await engine.totp.confirm_setup(subject_id, code_at(issued.secret, clock))).unwrap()
    return issued.secret


class TestFormatManualKey:
    def test_groups_of_four(self) -> None:
        assert format_manual_key("ABCDEFGHIJ") == "ABCD EFGH IJ"

    def test_strips_padding(self) -> None:
        assert format_manual_key("ABCDEFGH====") == "ABCD EFGH"


@pytest.mark.asyncio
class TestGenerateSecret:
    async def test_opens_setup_session(self, engine: OtpEngine) -> None:
        result = await engine.totp.generate_secret("u1", "a@b.com")

        issued = result.unwrap()
        assert len(issued.secret) == 32
        assert issued.expires_in == 600
        assert issued.provisioning_uri.startswith("otpauth://totp/")
        assert "issuer=SecureApp" in issued.provisioning_uri
        assert issued.manual_key.replace(" ", "") == issued.secret
        assert await engine.totp.state("u1") is TotpState.PENDING_CONFIRMATION

    async def test_secret_not_in_repr(self, engine: OtpEngine) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()

        assert issued.secret not in repr(issued)

    async def test_custom_issuer(self, store, identity, clock) -> None:
        manager = TotpManager(
            store=store,
            identity=identity,
            rate_limiter=RateLimiter(store),
            config=TotpConfig(issuer="Acme"),
            clock=clock,
        )

        issued = (await manager.generate_secret("u1", "a@b.com")).unwrap()

        assert "issuer=Acme" in issued.provisioning_uri

    async def test_unknown_subject(self, engine: OtpEngine) -> None:
        result = await engine.totp.generate_secret("ghost", "x@y.com")

        assert result.kind is FailureKind.UNKNOWN_SUBJECT

    async def test_already_enabled(self, engine: OtpEngine, clock) -> None:
        await enrol(engine, clock)

        result = await engine.totp.generate_secret("u1", "a@b.com")

        assert result.kind is FailureKind.ALREADY_ENABLED
        assert await engine.totp.state("u1") is TotpState.ENABLED

    async def test_regenerate_replaces_pending_secret(
        self, engine: OtpEngine, clock
    ) -> None:
        first = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()
        second = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()

        result = await engine.totp.confirm_setup("u1", code_at(second.secret, clock))

        assert first.secret != second.secret
        assert result.ok


@pytest.mark.asyncio
class TestConfirmSetup:
    @pytest.mark.parametrize("offset", [0, -30, 30, -60, 60])
    async def test_accepts_codes_within_drift_window(
        self, engine: OtpEngine, clock, offset: int
    ) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()

        result = await engine.totp.confirm_setup(
            "u1", code_at(issued.secret, clock, offset)
        )

        assert result.ok
        assert len(result.value.backup_codes) == 8

    @pytest.mark.parametrize("offset", [-90, 90])
    async def test_rejects_codes_outside_drift_window(
        self, engine: OtpEngine, clock, offset: int
    ) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()

        result = await engine.totp.confirm_setup(
            "u1", code_at(issued.secret, clock, offset)
        )

        assert result.kind is FailureKind.INVALID_CODE
        assert result.failure.message == "Invalid TOTP code"
        assert await engine.totp.state("u1") is TotpState.PENDING_CONFIRMATION

    async def test_persists_credential(
        self, engine: OtpEngine, identity: InMemoryIdentityLookup, clock
    ) -> None:
        secret = await enrol(engine, clock)

        profile = await identity.find_by_subject("u1")

        assert profile.totp_credential.secret == secret
        assert profile.totp_credential.enabled
        assert await engine.totp.state("u1") is TotpState.ENABLED

    async def test_session_expires(self, engine: OtpEngine, clock) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()
        clock.advance(600)

        result = await engine.totp.confirm_setup("u1", code_at(issued.secret, clock))

        assert result.kind is FailureKind.EXPIRED
        assert result.failure.message == (
            "TOTP setup session expired. Please restart setup."
        )
        assert await engine.totp.state("u1") is TotpState.NOT_CONFIGURED

    async def test_without_session(self, engine: OtpEngine) -> None:
        result = await engine.totp.confirm_setup("u1", "123456")

        assert result.kind is FailureKind.EXPIRED

    async def test_confirming_code_cannot_be_replayed(
        self, engine: OtpEngine, clock
    ) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()
        code = code_at(issued.secret, clock)
        await engine.totp.confirm_setup("u1", code)

        result = await engine.totp.verify("u1", code)

        assert result.kind is FailureKind.REPLAY_DETECTED


@pytest.mark.asyncio
class TestVerify:
    async def test_valid_code(self, engine: OtpEngine, clock) -> None:
        secret = await enrol(engine, clock)
        clock.advance(30)

        result = await engine.totp.verify("u1", code_at(secret, clock))

        assert result.ok

    async def test_replay_detected(self, engine: OtpEngine, clock) -> None:
        secret = await enrol(engine, clock)
        clock.advance(30)
        code = code_at(secret, clock)

        first = await engine.totp.verify("u1", code)
        second = await engine.totp.verify("u1", code)

        assert first.ok
        assert second.kind is FailureKind.REPLAY_DETECTED
        assert second.failure.message == "TOTP code already used"

    async def test_replay_marker_expires(self, engine: OtpEngine, clock) -> None:
        secret = await enrol(engine, clock)
        clock.advance(30)
        code = code_at(secret, clock)
        await engine.totp.verify("u1", code)

        clock.advance(150)

        # Marker gone, and the code is now outside the drift window.
        result = await engine.totp.verify("u1", code)
        assert result.kind is FailureKind.INVALID_CODE

    async def test_replay_marker_outlives_drift_window(
        self, engine: OtpEngine, clock
    ) -> None:
        """A code one step ahead stays acceptable for 150s; so must its marker."""
        secret = await enrol(engine, clock)
        clock.advance(300)
        code = code_at(secret, clock, 30)

        first = await engine.totp.verify("u1", code)
        clock.advance(95)
        second = await engine.totp.verify("u1", code)

        assert first.ok
        assert second.kind is FailureKind.REPLAY_DETECTED

    async def test_short_replay_ttl_is_raised_to_window(
        self, store, identity, clock
    ) -> None:
        manager = TotpManager(
            store=store,
            identity=identity,
            rate_limiter=RateLimiter(store),
            config=TotpConfig(replay_ttl_seconds=10, valid_window=1),
            clock=clock,
        )
        issued = (await manager.generate_secret("u1", "a@b.com")).unwrap()
        code = code_at(issued.secret, clock)
        await manager.confirm_setup("u1", code)

        assert await store.ttl(f"totp:used:u1:{code}") == 90

    async def test_not_configured(self, engine: OtpEngine) -> None:
        result = await engine.totp.verify("u1", "123456")

        assert result.kind is FailureKind.NOT_CONFIGURED
        assert result.failure.message == "TOTP not configured for this user"

    async def test_pending_setup_is_not_configured(
        self, engine: OtpEngine, clock
    ) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()

        result = await engine.totp.verify("u1", code_at(issued.secret, clock))

        assert result.kind is FailureKind.NOT_CONFIGURED

    async def test_disabled_credential_is_not_configured(self, store, clock) -> None:
        identity = InMemoryIdentityLookup(
            [
                IdentityProfile(
                    subject_id="u1",
                    totp_credential=TotpCredential(
                        secret=pyotp.random_base32(), enabled=False
                    ),
                )
            ]
        )
        manager = TotpManager(
            store=store, identity=identity, rate_limiter=RateLimiter(store), clock=clock
        )

        result = await manager.verify("u1", "123456")

        assert result.kind is FailureKind.NOT_CONFIGURED

    async def test_wrong_code(self, engine: OtpEngine, clock) -> None:
        secret = await enrol(engine, clock)

        result = await engine.totp.verify("u1", code_at(secret, clock, 600))

        assert result.kind is FailureKind.INVALID_CODE

    async def test_rate_limited(self, engine: OtpEngine, clock) -> None:
        secret = await enrol(engine, clock)
        wrong = code_at(secret, clock, 600)
        for _ in range(5):
            await engine.totp.verify("u1", wrong)

        clock.advance(30)
        result = await engine.totp.verify("u1", code_at(secret, clock))

        assert result.kind is FailureKind.RATE_LIMITED
        assert result.failure.reset_in_seconds == 870

    async def test_store_outage_raises(self) -> None:
        identity = InMemoryIdentityLookup(
            [
                IdentityProfile(
                    subject_id="u1",
                    totp_credential=TotpCredential(secret=pyotp.random_base32()),
                )
            ]
        )
        store = AsyncMock(spec=InMemoryEphemeralStore)
        store.increment.side_effect = StoreUnavailableError("increment", "refused")
        store.exists.side_effect = StoreUnavailableError("exists", "refused")
        manager = TotpManager(
            store=store, identity=identity, rate_limiter=RateLimiter(store)
        )

        with pytest.raises(StoreUnavailableError):
            await manager.verify("u1", "123456")


@pytest.mark.asyncio
class TestDisable:
    async def test_disable_returns_to_not_configured(
        self, engine: OtpEngine, clock
    ) -> None:
        secret = await enrol(engine, clock)

        await engine.totp.disable("u1")

        assert await engine.totp.state("u1") is TotpState.NOT_CONFIGURED
        clock.advance(30)
        result = await engine.totp.verify("u1", code_at(secret, clock))
        assert result.kind is FailureKind.NOT_CONFIGURED

    async def test_disable_drops_pending_setup(self, engine: OtpEngine) -> None:
        await engine.totp.generate_secret("u1", "a@b.com")

        await engine.totp.disable("u1")

        assert await engine.totp.state("u1") is TotpState.NOT_CONFIGURED

    async def test_disable_is_idempotent(self, engine: OtpEngine) -> None:
        await engine.totp.disable("u1")
        await engine.totp.disable("u1")
        await engine.totp.disable("ghost")

        assert await engine.totp.state("u1") is TotpState.NOT_CONFIGURED

    async def test_can_enrol_again_after_disable(
        self, engine: OtpEngine, clock
    ) -> None:
        await enrol(engine, clock)
        await engine.totp.disable("u1")

        assert (await engine.totp.generate_secret("u1", "a@b.com")).ok


class TestProvisioningQrCode:
    def test_png_data_uri(self) -> None:
        pytest.importorskip("qrcode")

        uri = pyotp.TOTP(pyotp.random_base32()).provisioning_uri(
            name="a@b.com", issuer_name="SecureApp"
        )

        assert provisioning_qr_code(uri).startswith("data:image/png;base64,")

    def test_missing_dependency(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setitem(sys.modules, "qrcode", None)

        with pytest.raises(ImportError, match="otp-engine\\[qr\\]"):
            provisioning_qr_code("otpauth://totp/x")
