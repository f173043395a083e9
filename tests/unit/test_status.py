"""Tests for the masked status summary."""

from __future__ import annotations

import pyotp
import pytest

from otp_engine import FailureKind, OtpEngine, TotpState
from otp_engine.status import mask_email, mask_phone_number


class TestMasking:
    @pytest.mark.parametrize(
        ("phone", "masked"),
        [
            ("+15551234567", "+155****4567"),
            ("+1 555 123 4567", "+1 55* *** 4567"),
            ("1234567", "***4567"),
        ],
    )
    def test_mask_phone_number(self, phone: str, masked: str) -> None:
        assert mask_phone_number(phone) == masked

    @pytest.mark.parametrize(
        ("email", "masked"),
        [
            ("alice@example.com", "a***@example.com"),
            ("a@b.com", "a***@b.com"),
            ("not-an-email", "***"),
        ],
    )
    def test_mask_email(self, email: str, masked: str) -> None:
        assert mask_email(email) == masked


@pytest.mark.asyncio
class TestStatus:
    async def test_fresh_subject(self, engine: OtpEngine) -> None:
        status = (await engine.status("u1")).unwrap()

        assert status.email.available
        assert status.email.destination_masked == "a***@b.com"
        assert status.sms.available
        assert status.sms.destination_masked == "+155****4567"
        assert not status.totp.enabled
        assert status.totp.enabled_at is None
        assert status.totp.state is TotpState.NOT_CONFIGURED

    async def test_missing_phone(self, engine: OtpEngine) -> None:
        status = (await engine.status("no-phone")).unwrap()

        assert not status.sms.available
        assert status.sms.destination_masked is None

    async def test_totp_enabled(self, engine: OtpEngine, clock) -> None:
        issued = (await engine.totp.generate_secret("u1", "a@b.com")).unwrap()
        pending = (await engine.status("u1")).unwrap()
        code = pyotp.TOTP(issued.secret).at(int(clock.now))
        await engine.totp.confirm_setup("u1", code)

        status = (await engine.status("u1")).unwrap()

        assert pending.totp.state is TotpState.PENDING_CONFIRMATION
        assert not pending.totp.enabled
        assert status.totp.enabled
        assert status.totp.enabled_at is not None
        assert status.totp.state is TotpState.ENABLED

    async def test_never_exposes_raw_destinations(self, engine: OtpEngine) -> None:
        status = (await engine.status("u1")).unwrap()

        assert "a@b.com" not in repr(status)
        assert "+15551234567" not in repr(status)

    async def test_unknown_subject(self, engine: OtpEngine) -> None:
        result = await engine.status("ghost")

        assert result.kind is FailureKind.UNKNOWN_SUBJECT
