"""Read-only summary of a subject's second-factor configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from .results import FailureKind, Result
from .totp import TotpState

if TYPE_CHECKING:
    from .ports import IIdentityLookup
    from .totp import TotpManager


@dataclass(frozen=True)
class ChannelStatus:
    available: bool
    destination_masked: str | None = None


@dataclass(frozen=True)
class TotpStatus:
    enabled: bool
    enabled_at: datetime | None = None
    state: TotpState = TotpState.NOT_CONFIGURED


@dataclass(frozen=True)
class MfaStatus:
    email: ChannelStatus
    sms: ChannelStatus
    totp: TotpStatus


def mask_phone_number(phone_number: str) -> str:
    """Mask a phone number keeping the first 3 and last 4 digits.

    Example: ``+15551234567`` -> ``+155****4567``. Non-digit characters
    keep their position; numbers with 7 digits or fewer are fully masked
    except the last 4.
    """
    digit_positions = [i for i, ch in enumerate(phone_number) if ch.isdigit()]
    if len(digit_positions) <= 7:
        keep = set(digit_positions[-4:])
    else:
        keep = set(digit_positions[:3] + digit_positions[-4:])
    return "".join(
        "*" if i in digit_positions and i not in keep else ch
        for i, ch in enumerate(phone_number)
    )


def mask_email(email: str) -> str:
    """Mask the local part of an email: ``alice@example.com`` -> ``a***@example.com``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


class StatusAggregator:
    """Builds :class:`MfaStatus` from the identity profile and TOTP state.

    Never exposes raw destinations, codes or secrets.
    """

    def __init__(self, *, identity: IIdentityLookup, totp: TotpManager) -> None:
        self.identity = identity
        self.totp = totp

    async def status(self, subject_id: str) -> Result[MfaStatus]:
        profile = await self.identity.find_by_subject(subject_id)
        if profile is None:
            return Result.fail(FailureKind.UNKNOWN_SUBJECT, "User not found")

        credential = profile.totp_credential
        enabled = credential is not None and credential.enabled
        return Result.success(
            MfaStatus(
                email=ChannelStatus(
                    available=bool(profile.email),
                    destination_masked=mask_email(profile.email)
                    if profile.email
                    else None,
                ),
                sms=ChannelStatus(
                    available=bool(profile.phone_number),
                    destination_masked=mask_phone_number(profile.phone_number)
                    if profile.phone_number
                    else None,
                ),
                totp=TotpStatus(
                    enabled=enabled,
                    enabled_at=credential.enabled_at if enabled and credential else None,
                    state=await self.totp.state(subject_id),
                ),
            )
        )


__all__: list[str] = [
    "ChannelStatus",
    "TotpStatus",
    "MfaStatus",
    "StatusAggregator",
    "mask_phone_number",
    "mask_email",
]
